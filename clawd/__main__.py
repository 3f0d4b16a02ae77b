#!/usr/bin/env python3
"""
Main entry point for the clawd package.

Starts the proxy server in a background thread and runs the agent CLI in the
foreground against it:

    clawd [--family gpt-5|gpt-4o] [--azure] [--gemini] [--port N] [cli args...]
"""

import argparse
import logging
import sys
import threading
import time

import uvicorn

from .config import MODEL_FAMILIES, Config, ConfigError, setup_logging
from .launcher import TARGET_CLAUDE, TARGET_GEMINI, CLILauncher
from .server import create_app

logger = logging.getLogger(__name__)

SERVER_START_TIMEOUT = 10.0
SERVER_STOP_TIMEOUT = 5.0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clawd",
        description="Run Claude Code or Gemini CLI against an OpenAI Chat Completions backend.",
        epilog="Unrecognized arguments are passed through to the launched CLI.",
        allow_abbrev=False,
    )
    parser.add_argument(
        "--family", choices=sorted(MODEL_FAMILIES), default=None, help="Backend model family"
    )
    parser.add_argument("--azure", action="store_true", help="Use Azure OpenAI")
    parser.add_argument("--gemini", action="store_true", help="Launch Gemini CLI instead of Claude Code")
    parser.add_argument("--port", type=int, default=None, help="Port for the proxy server")
    return parser


def _start_server(server: uvicorn.Server) -> threading.Thread:
    thread = threading.Thread(target=server.run, name="clawd-server", daemon=True)
    thread.start()

    deadline = time.monotonic() + SERVER_START_TIMEOUT
    while not server.started:
        if not thread.is_alive() or time.monotonic() > deadline:
            raise RuntimeError("Proxy server failed to start, see the log file for details")
        time.sleep(0.05)
    return thread


def _stop_server(server: uvicorn.Server, thread: threading.Thread) -> None:
    server.should_exit = True
    thread.join(timeout=SERVER_STOP_TIMEOUT)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the package."""
    args, cli_args = build_parser().parse_known_args(argv)

    config = Config(
        model_family=args.family,
        use_azure=True if args.azure else None,
        port=args.port,
    )
    try:
        config.validate()
    except ConfigError as e:
        print(str(e), file=sys.stderr)
        return 1

    setup_logging(config)
    target = TARGET_GEMINI if args.gemini else TARGET_CLAUDE
    logger.info(f"Log file: {config.log_file_path}")
    logger.info(f"Provider: {config.provider}, model family: {config.model_family}")
    logger.info(f"{target} args: {' '.join(cli_args)}")

    launcher = CLILauncher(config, cli_args, target=target)

    def on_fatal(error: BaseException) -> None:
        logger.error(f"Fatal backend error, terminating {target}: {error}")
        launcher.kill()

    app = create_app(config, on_fatal=on_fatal)
    server = uvicorn.Server(
        uvicorn.Config(app, host=config.host, port=config.port, log_config=None)
    )

    try:
        thread = _start_server(server)
    except RuntimeError as e:
        logger.error(str(e))
        print(str(e), file=sys.stderr)
        return 1

    try:
        launcher.launch()
    except OSError as e:
        logger.error(f"Failed to launch {target}: {e}")
        print(f"Failed to launch {target}: {e}", file=sys.stderr)
        _stop_server(server, thread)
        return 1

    try:
        code = launcher.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
        launcher.kill()
        code = launcher.wait()
    finally:
        _stop_server(server, thread)

    return code


if __name__ == "__main__":
    sys.exit(main())
