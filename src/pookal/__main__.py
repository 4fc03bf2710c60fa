"""Pookal entry point.

Changes:
  - 2026-10-12: Added --voice for a single spoken exchange.
  - 2026-10-08: Chat REPL gained /edit for correcting proposal fields.
  - 2026-10-05: HTTP API is the default mode (no flags needed).
"""

import argparse
import asyncio
import logging

from rich.console import Console

from pookal import __version__
from pookal.config import Settings, get_config_dir, get_settings
from pookal.logging_setup import setup_logging

logger = logging.getLogger(__name__)

console = Console()


def run_server_mode(settings: Settings, host: str, port: int) -> None:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from pookal.api import create_app

    app = create_app(settings)
    logger.info("Serving Pookal API on http://%s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


def _print_capabilities(registry) -> None:
    for cap in registry.list_capabilities():
        marker = " [yellow](needs confirmation)[/]" if registry.is_sensitive(cap["name"]) else ""
        console.print(f"  [bold]{cap['name']}[/]{marker} - {cap['description']}")


def _parse_edit(line: str) -> tuple[str, str] | None:
    parts = line.split(maxsplit=2)
    if len(parts) < 3:
        return None
    return parts[1], parts[2]


async def run_chat_mode(settings: Settings, persona: str | None = None) -> None:
    """Interactive text chat with inline proposal confirmation."""
    from pookal.agents.conversation import Conversation, describe_outcome
    from pookal.llm.client import resolve_llm_client
    from pookal.tools.capabilities.registry import build_default_registry

    registry = build_default_registry(settings)
    conversation = Conversation(
        resolve_llm_client(settings),
        registry,
        persona=persona or settings.persona,
        auto_consent=settings.auto_consent_enabled,
        temperature=settings.agent_temperature,
    )
    loop = asyncio.get_running_loop()

    console.print(f"\n  Chatting with [bold]{conversation.persona.name}[/]. Type /help for commands.\n")
    while True:
        try:
            line = (await loop.run_in_executor(None, input, "you> ")).strip()
        except EOFError:
            break
        if not line:
            continue
        if line in ("/quit", "/exit"):
            break
        if line == "/help":
            console.print("  /accept  /decline  /edit <field> <value>  /persona <name>  /capabilities  /quit")
            continue
        if line == "/capabilities":
            _print_capabilities(registry)
            continue
        if line.startswith("/persona"):
            name = line.partition(" ")[2].strip()
            console.print(f"  Now talking with [bold]{conversation.set_persona(name).name}[/]")
            continue

        pending = conversation.latest_pending()
        if line.startswith("/edit"):
            edit = _parse_edit(line)
            if pending is None or edit is None:
                console.print("  [yellow]Nothing to edit.[/] Usage: /edit <field> <value>")
                continue
            conversation.set_override(pending.id, *edit)
            console.print(f"  {edit[0]} -> {edit[1]}")
            continue
        if line == "/accept":
            if pending is None:
                console.print("  [yellow]No pending proposal.[/]")
                continue
            outcome = await conversation.confirm(pending.id)
            console.print(f"{conversation.persona.name}> {describe_outcome(outcome)}")
            continue
        if line == "/decline":
            if pending is None:
                console.print("  [yellow]No pending proposal.[/]")
                continue
            await conversation.decline(pending.id)
            console.print(f"{conversation.persona.name}> Okay, I won't do that.")
            continue

        turn = await conversation.handle_user_text(line)
        console.print(f"{conversation.persona.name}> {turn.reply.content}")
        if turn.proposal is not None and turn.consent is None:
            console.print("  [dim]/accept to go ahead, /decline to cancel, /edit to change a field[/]")


async def run_voice_mode(settings: Settings, persona: str | None = None) -> int:
    """One spoken exchange: listen, answer aloud, return."""
    from pookal.agents.assistant import PersonaResponder
    from pookal.llm.client import resolve_llm_client
    from pookal.voice.backends import build_voice_pipeline

    responder = PersonaResponder(resolve_llm_client(settings), persona or settings.persona)

    def _show(session) -> None:
        console.print(f"  [dim]{session.phase.value}[/]")

    pipeline = build_voice_pipeline(settings, responder, on_state_change=_show)
    console.print(
        f"\n  Listening for {settings.voice_auto_stop_seconds:.0f}s. Speak to {responder.persona.name} ..."
    )
    try:
        session = await pipeline.run_once()
    finally:
        await pipeline.close()

    if session.failed_stage:
        console.print(f"  [red]\\[FAIL][/] Voice {session.failed_stage} failed (see log above)")
        return 1
    if session.notice:
        console.print(f"  [yellow]\\[WARN][/] {session.notice.capitalize()}")
        return 0
    console.print(f"  you> {session.transcript}")
    console.print(f"  {responder.persona.name}> {session.response}")
    return 0


async def ollama_rows(settings: Settings, transport=None) -> list[tuple[str, str, str]]:
    """Doctor rows for the local Ollama server and the configured model."""
    import httpx

    from pookal.llm.client import resolve_llm_client

    llm = resolve_llm_client(settings, force_provider="ollama")
    host = llm.ollama_host.rstrip("/")
    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            resp = await client.get(f"{host}/api/tags")
            resp.raise_for_status()
            installed = [entry.get("name", "") for entry in resp.json().get("models", [])]
    except Exception as exc:
        return [("critical", f"Ollama unreachable at {host}: {exc}", "start it with: ollama serve")]

    rows = [("ok", f"Ollama at {host} lists {len(installed)} model(s)", "")]
    # Tags carry an optional ":<variant>" suffix.
    if llm.model in installed or any(name.startswith(f"{llm.model}:") for name in installed):
        rows.append(("ok", f"Model '{llm.model}' installed", ""))
    else:
        known = f" (have: {', '.join(installed[:10])})" if installed else ""
        rows.append(("warning", f"Model '{llm.model}' not installed{known}", f"ollama pull {llm.model}"))
    return rows


def _print_rows(title: str, rows: list[tuple[str, str, str]]) -> None:
    icons = {"ok": "[green]\\[OK][/]", "warning": "[yellow]\\[WARN][/]", "critical": "[red]\\[FAIL][/]"}
    console.print("\n" + "=" * 64)
    console.print(title)
    console.print("=" * 64)
    for status, message, hint in rows:
        console.print(f"  {icons[status]} {message}")
        if hint:
            console.print(f"       Fix: {hint}")
    console.print("=" * 64 + "\n")


async def check_ollama(settings: Settings) -> int:
    """Exit status 0 when Ollama answers and the model is installed."""
    rows = await ollama_rows(settings)
    _print_rows("Ollama", rows)
    return 0 if all(status == "ok" for status, _, _ in rows) else 1


def _check_voice_extras() -> list[str]:
    import importlib.util

    modules = {
        "sounddevice": "sounddevice",
        "faster_whisper": "faster-whisper",
        "piper": "piper-tts",
        "soundfile": "soundfile",
    }
    return [pkg for mod, pkg in modules.items() if importlib.util.find_spec(mod) is None]


async def run_doctor(settings: Settings) -> int:
    """Print configuration, credential and connectivity checks."""
    from pathlib import Path

    rows: list[tuple[str, str, str]] = []

    rows.append(("ok", f"Config directory: {get_config_dir()}", ""))
    rows.append(("ok", f"LLM provider: {settings.llm_provider}", ""))
    if settings.ors_api_key:
        rows.append(("ok", "OpenRouteService key configured", ""))
    else:
        rows.append(("warning", "ORS_API_KEY not set; maps.safe_route will fail", "export ORS_API_KEY=..."))
    if settings.missing_twilio_credentials():
        rows.append(
            ("warning", "Twilio credentials incomplete; SMS and calls will fail", "set TWILIO_* variables")
        )
    else:
        rows.append(("ok", "Twilio credentials configured", ""))

    missing = _check_voice_extras()
    if missing:
        rows.append(("warning", f"Voice extras missing: {', '.join(missing)}", "pip install 'pookal[voice]'"))
    elif not Path(settings.piper_model_path).expanduser().is_file():
        rows.append(("warning", f"Piper model not found: {settings.piper_model_path}", ""))
    else:
        rows.append(("ok", "Voice backends available", ""))

    if settings.llm_provider == "ollama":
        rows.extend(await ollama_rows(settings))

    _print_rows("Pookal Doctor", rows)
    return 1 if any(status == "critical" for status, _, _ in rows) else 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Pookal - a safety companion that asks before it acts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pookal                      Serve the HTTP API (default)
  pookal --chat               Chat in the terminal
  pookal --chat --persona sage
  pookal --voice              One spoken exchange
  pookal --doctor             Check configuration and providers
""",
    )
    parser.add_argument("--chat", action="store_true", help="Interactive terminal chat")
    parser.add_argument("--voice", action="store_true", help="Listen once and answer aloud")
    parser.add_argument("--persona", type=str, default=None, help="lily, sage, marigold or orchid")
    parser.add_argument("--capabilities", action="store_true", help="List registered capabilities")
    parser.add_argument("--doctor", action="store_true", help="Check configuration and providers")
    parser.add_argument(
        "--check-ollama", action="store_true", help="Check Ollama connectivity and model availability"
    )
    parser.add_argument("--host", type=str, default=None, help="Host to bind the API server")
    parser.add_argument("--port", "-p", type=int, default=None, help="Port for the API server")
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level)

    try:
        if args.doctor:
            raise SystemExit(asyncio.run(run_doctor(settings)))
        if args.check_ollama:
            raise SystemExit(asyncio.run(check_ollama(settings)))
        if args.capabilities:
            from pookal.tools.capabilities.registry import build_default_registry

            _print_capabilities(build_default_registry(settings))
        elif args.chat:
            asyncio.run(run_chat_mode(settings, args.persona))
        elif args.voice:
            raise SystemExit(asyncio.run(run_voice_mode(settings, args.persona)))
        else:
            host = args.host or settings.web_host
            port = args.port or settings.web_port
            run_server_mode(settings, host, port)
    except KeyboardInterrupt:
        logger.info("Pookal stopped.")


if __name__ == "__main__":
    main()
