import os
import sys
import json
import asyncio
import argparse

from voxride import logui
from voxride.config import CUSTOM_COMMANDS_FILES, CONTROL_API_HOST, CONTROL_API_PORT, VOSK_MODEL_NAME
from voxride.client import ControlClient, is_port_open
from voxride.registry import default_registry, load_custom_mappings
from voxride.settings import SessionSettings
from voxride.session import build_session, SessionUnavailableError
from voxride.logui import ui_state, info, warn, error


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Voice commands for Zwift, pressed as keyboard shortcuts")
    p.add_argument("--ui", action="store_true", help="emit STATE:/EVENT: lines for a UI shell")
    p.add_argument("--test-mode", action="store_true", help="log actions instead of pressing keys")
    p.add_argument("--trainer-mode", action="store_true", help="stricter threshold for noisy trainer rooms")
    p.add_argument("--threshold", type=float, default=None, help="confidence threshold (0.5 - 0.95)")
    p.add_argument("--rate-limit", type=int, default=None, help="minimum ms between key presses")
    p.add_argument("--commands", action="append", default=[], metavar="CSV", help="extra phrase,action CSV")
    p.add_argument("--no-api", action="store_true", help="do not serve the local control API")
    p.add_argument("--port", type=int, default=CONTROL_API_PORT)
    p.add_argument("--model", default=None, metavar="DIR", help="Vosk model directory")
    p.add_argument("--send", default=None, metavar="TEXT", help="simulate TEXT on a running instance and exit")
    p.add_argument("--log-level", default=None, choices=["DEBUG", "INFO", "WARN", "ERROR"])
    return p.parse_args(argv)


def build_settings(args) -> SessionSettings:
    settings = SessionSettings(test_mode=args.test_mode, trainer_mode=args.trainer_mode)
    if args.threshold is not None:
        settings.set_threshold(args.threshold)
    if args.rate_limit is not None:
        settings.set_rate_limit(args.rate_limit)
    return settings


def load_registry(base_dir: str, extra_files: list[str]):
    registry = default_registry()
    for name in CUSTOM_COMMANDS_FILES:
        load_custom_mappings(registry, os.path.join(base_dir, name))
    for path in extra_files:
        if not os.path.exists(path):
            warn(f"Commands file not found: {path}")
            continue
        load_custom_mappings(registry, path)
    return registry


def create_engine(base_dir: str, model: str | None, phrases: list[str]):
    try:
        from voxride.speech import VoskSpeechEngine
    except ImportError as e:
        warn(f"Speech engine unavailable ({e}); install the 'speech' extra")
        return None

    if model:
        model = os.path.abspath(model)
        return VoskSpeechEngine(os.path.dirname(model), phrases, model_name=os.path.basename(model))
    return VoskSpeechEngine(base_dir, phrases, model_name=VOSK_MODEL_NAME)


async def run(args, base_dir: str):
    settings = build_settings(args)
    registry = load_registry(base_dir, args.commands)
    info(f"Commands loaded: {len(registry)}")

    engine = create_engine(base_dir, args.model, registry.phrases())
    session = build_session(settings=settings, registry=registry, engine=engine)

    try:
        try:
            await session.start()
        except SessionUnavailableError as e:
            if args.no_api:
                raise
            warn(f"{e}; running with the control API only")

        waiters = [asyncio.ensure_future(session.wait_closed())]
        if not args.no_api:
            from voxride.control_api import serve_control_api

            waiters.append(asyncio.ensure_future(serve_control_api(session, CONTROL_API_HOST, args.port)))

        ui_state("READY")
        done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            task.result()
    finally:
        await session.shutdown()
        if engine is not None:
            engine.close()


def send(text: str, port: int = CONTROL_API_PORT) -> int:
    url = f"http://{CONTROL_API_HOST}:{port}"
    if not is_port_open(CONTROL_API_HOST, port):
        error(f"No running instance on {url}")
        return 1
    res = ControlClient(url).simulate(text)
    if res is None:
        return 1
    print(json.dumps(res, ensure_ascii=False, indent=2))
    return 0


def main():
    args = parse_args()
    logui.configure(level=args.log_level, ui=args.ui)
    base_dir = os.path.dirname(os.path.abspath(__file__))

    if args.send:
        sys.exit(send(args.send, args.port))

    try:
        ui_state("STARTING")
        asyncio.run(run(args, base_dir))
    except KeyboardInterrupt:
        info("Stopped by user")
    except Exception as e:
        ui_state("ERROR")
        error(f"Failed to start: {e}")
        sys.exit(1)
    ui_state("STOPPED")


if __name__ == "__main__":
    main()
