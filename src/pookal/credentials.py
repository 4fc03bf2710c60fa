"""Encrypted secrets for provider credentials.

API keys and Twilio credentials never go into ``config.json``. They are kept
in ``<config_dir>/secrets.enc`` as a Fernet token over a JSON object. The key
is stretched with PBKDF2 from this machine's id and the login name, so a
copied file is useless elsewhere.
"""

from __future__ import annotations

import base64
import getpass
import json
import logging
import os
import platform
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

SECRET_FIELDS: frozenset[str] = frozenset(
    {
        "openai_api_key",
        "openai_compatible_api_key",
        "anthropic_api_key",
        "ors_api_key",
        "twilio_account_sid",
        "twilio_auth_token",
    }
)

SECRETS_FILENAME = "secrets.enc"
SALT_FILENAME = ".salt"
_KDF_ITERATIONS = 480_000
_SALT_BYTES = 16


def _restrict(path: Path, mode: int) -> None:
    try:
        path.chmod(mode)
    except OSError:
        logger.debug("Could not chmod %s", path)


def _machine_identity() -> bytes:
    machine_id = ""
    for candidate in (Path("/etc/machine-id"), Path("/var/lib/dbus/machine-id")):
        if candidate.is_file():
            machine_id = candidate.read_text().strip()
            if machine_id:
                break
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "pookal"
    return f"{machine_id or platform.node()}|{user}".encode()


def derive_key(identity: bytes, salt: bytes) -> bytes:
    """Fernet key (urlsafe base64) for ``identity`` and ``salt``."""
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=_KDF_ITERATIONS)
    return base64.urlsafe_b64encode(kdf.derive(identity))


class CredentialStore:
    """Read-through cache over the encrypted secrets file."""

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)
        self.secrets_path = self.config_dir / SECRETS_FILENAME
        self.salt_path = self.config_dir / SALT_FILENAME
        self._secrets: dict[str, str] | None = None
        self._cipher: Fernet | None = None

    def _salt(self) -> bytes:
        if self.salt_path.is_file():
            salt = self.salt_path.read_bytes()
            if len(salt) >= _SALT_BYTES:
                return salt[:_SALT_BYTES]
        self.config_dir.mkdir(parents=True, exist_ok=True)
        _restrict(self.config_dir, 0o700)
        salt = os.urandom(_SALT_BYTES)
        self.salt_path.write_bytes(salt)
        _restrict(self.salt_path, 0o600)
        return salt

    def _fernet(self) -> Fernet:
        if self._cipher is None:
            self._cipher = Fernet(derive_key(_machine_identity(), self._salt()))
        return self._cipher

    def _read(self) -> dict[str, str]:
        if self._secrets is not None:
            return self._secrets
        if not self.secrets_path.is_file():
            self._secrets = {}
            return self._secrets

        try:
            payload = json.loads(self._fernet().decrypt(self.secrets_path.read_bytes()))
        except (InvalidToken, ValueError) as exc:
            logger.warning("Ignoring unreadable %s (%s)", self.secrets_path.name, type(exc).__name__)
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        self._secrets = {str(k): str(v) for k, v in payload.items()}
        return self._secrets

    def _write(self, secrets: dict[str, str]) -> None:
        token = self._fernet().encrypt(json.dumps(secrets, sort_keys=True).encode())
        self.secrets_path.write_bytes(token)
        _restrict(self.secrets_path, 0o600)
        self._secrets = secrets

    def get(self, name: str) -> str | None:
        return self._read().get(name)

    def set(self, name: str, value: str) -> None:
        secrets = dict(self._read())
        secrets[name] = value
        self._write(secrets)

    def delete(self, name: str) -> None:
        secrets = dict(self._read())
        if secrets.pop(name, None) is not None:
            self._write(secrets)

    def get_all(self) -> dict[str, str]:
        return dict(self._read())

    def clear_cache(self) -> None:
        self._secrets = None
