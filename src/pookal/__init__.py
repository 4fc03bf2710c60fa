"""Pookal: a safety companion that proposes actions and waits for consent."""

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

try:
    __version__ = get_version("pookal")
except PackageNotFoundError:
    __version__ = "0.0.0"
