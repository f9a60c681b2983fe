# SPDX-License-Identifier: MIT
"""Command-line interface for running the conversation gateway."""

from __future__ import annotations

import argparse
import logging
import os
import platform
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Callable, Sequence

import logfire
import uvicorn

from constants import SERVICE_NAME
from gateway.app import create_app
from observability.monitoring import init_logfire
from runtime.environment import RuntimeEnv
from runtime.settings import Settings, load_settings

LOG_LEVELS = ["fatal", "error", "warn", "notice", "info", "debug", "trace"]

# Module logger for CLI diagnostics mirroring
logger = logging.getLogger(__name__)


def _print_version() -> None:
    """Print the installed package version."""
    try:
        pkg_version = version(SERVICE_NAME)
    except PackageNotFoundError:  # pragma: no cover - fallback for editable installs
        pkg_version = "unknown"
    line = f"{SERVICE_NAME} {pkg_version}"
    print(line)
    logger.info(line)


def _print_diagnostics() -> None:
    """Output basic environment information for health checks."""
    _print_version()
    print(f"Python {platform.python_version()}")
    print(f"Platform {platform.platform()}")
    platforms = [
        name
        for name, var in (("telegram", "TELEGRAM_BOT_TOKEN"), ("slack", "SLACK_BOT_TOKEN"))
        if os.getenv(var)
    ]
    if platforms:
        print("Platform tokens present: " + ", ".join(platforms))
    else:
        print("No platform tokens set; only the test adapter will be available")


def _configure_logging(args: argparse.Namespace, settings: Settings) -> None:
    """Configure Logfire based on verbosity flags."""
    index = LOG_LEVELS.index(settings.log_level) + args.verbose - args.quiet
    index = max(0, min(len(LOG_LEVELS) - 1, index))
    init_logfire(settings.logfire_token, LOG_LEVELS[index])  # type: ignore[arg-type]


def _apply_args_to_settings(args: argparse.Namespace, settings: Settings) -> None:
    """Override settings fields based on CLI arguments."""
    arg_mapping: dict[str, tuple[str, Callable[[Any], Any] | None]] = {
        "host": ("host", None),
        "port": ("port", int),
        "max_concurrent": ("max_concurrent_conversations", int),
        "orchestrator": ("orchestrator", None),
    }
    for arg_name, (attr, converter) in arg_mapping.items():
        value = getattr(args, arg_name, None)
        if value is not None:  # branch: override settings when flag provided
            setattr(settings, attr, converter(value) if converter else value)


def _cmd_serve(args: argparse.Namespace, settings: Settings) -> None:
    """Start the HTTP gateway and any configured chat adapters."""
    env = RuntimeEnv.initialize(settings)
    app = create_app(env.settings, lock_manager=env.lock_manager)
    logfire.info(
        "Starting gateway",
        host=settings.host,
        port=settings.port,
        max_concurrent=settings.max_concurrent_conversations,
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


def _cmd_check_config(args: argparse.Namespace, settings: Settings) -> None:
    """Validate configuration and print the effective values."""
    RuntimeEnv.initialize(settings)
    print(f"max_concurrent_conversations={settings.max_concurrent_conversations}")
    print(f"orchestrator={settings.orchestrator}")
    print(f"telegram={'enabled' if settings.telegram_bot_token else 'disabled'}")
    print(f"slack={'enabled' if settings.slack_bot_token else 'disabled'}")
    print(f"test_adapter={'enabled' if settings.test_adapter_enabled else 'disabled'}")


def _add_common_args(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    """Attach arguments shared by every subcommand."""
    parser.add_argument(
        "--env-file", help="Dotenv file merged beneath environment variables."
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        help="Override MAX_CONCURRENT_CONVERSATIONS.",
    )
    parser.add_argument(
        "--orchestrator",
        help="Message handler import path ('module:attribute').",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Increase log verbosity."
    )
    parser.add_argument(
        "-q", "--quiet", action="count", default=0, help="Decrease log verbosity."
    )
    return parser


def _build_parser() -> argparse.ArgumentParser:
    """Return an argument parser configured with subcommands."""
    parser = argparse.ArgumentParser(
        description=(
            "Chat gateway that serialises agent work per conversation while "
            "bounding concurrency across all conversations."
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--version", action="store_true", help="Print the version and exit."
    )
    parser.add_argument(
        "--diagnostics",
        action="store_true",
        help="Print environment diagnostics and exit.",
    )
    common = _add_common_args(
        argparse.ArgumentParser(
            add_help=False, formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )
    )
    subparsers = parser.add_subparsers(dest="command")
    serve = subparsers.add_parser(
        "serve", parents=[common], help="Run the HTTP gateway and chat adapters."
    )
    serve.add_argument("--host", help="Interface to bind.")
    serve.add_argument("--port", type=int, help="Port to bind.")
    serve.set_defaults(func=_cmd_serve)
    check = subparsers.add_parser(
        "check-config", parents=[common], help="Validate configuration and exit."
    )
    check.set_defaults(func=_cmd_check_config)
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """Parse arguments and dispatch to the requested subcommand."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.version:
        _print_version()
        return
    if args.diagnostics:
        _print_diagnostics()
        return
    if args.command is None:
        parser.print_help()
        raise SystemExit(1)
    settings = load_settings(args.env_file)
    _apply_args_to_settings(args, settings)
    _configure_logging(args, settings)
    args.func(args, settings)


if __name__ == "__main__":
    # Allow module to be executed as a standalone script
    main()
