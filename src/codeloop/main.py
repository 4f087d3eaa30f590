"""
codeloop entry point.

This file handles startup concerns (arg-parsing, env setup, logging) and launches the appropriate
interface (interactive CLI or API).
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from codeloop.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stderr,
    )
    # Model SDKs log every request through httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _export_overrides() -> None:
    """Write the resolved settings back to the environment.

    The uvicorn reloader imports the app in a fresh process, which rebuilds `Settings` from the
    environment and would otherwise lose the command-line overrides.
    """
    for name in ("LOG_LEVEL", "PLANNER", "WORKDIR", "MAX_ITERATIONS"):
        value = getattr(settings, name)
        if value is None:
            os.environ.pop(name, None)
        else:
            os.environ[name] = str(value)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the codeloop application.

    This function sets up the command-line interface, initializes logging, pins the workspace
    root, and starts the application in either CLI or API mode.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run the codeloop coding agent")
    parser.add_argument(
        "--mode",
        choices=["cli", "api"],
        type=str.lower,
        default="cli",
        help="Launch the interactive shell or the REST API (default: cli)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    parser.add_argument(
        "--planner",
        type=str.lower,
        default=settings.PLANNER,
        help="Model provider: openai or anthropic (default from env: %(default)s)",
    )
    parser.add_argument(
        "--workdir",
        default=settings.WORKDIR,
        help="Directory the tools are confined to (default: current directory)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=settings.MAX_ITERATIONS,
        help="Stop a query after this many model calls (default: unlimited)",
    )
    args = parser.parse_args(argv)

    # Command-line arguments win over env settings
    settings.LOG_LEVEL = args.log_level
    settings.PLANNER = args.planner
    settings.MAX_ITERATIONS = args.max_iterations

    _init_logging(settings.LOG_LEVEL)

    # The sandbox root is fixed once, at startup
    workdir = Path(args.workdir or os.getcwd()).resolve()
    if not workdir.is_dir():
        logger.error("Working directory does not exist: %s", workdir)
        sys.exit(1)
    settings.WORKDIR = str(workdir)

    logger.info("Starting codeloop [%s mode] in %s", args.mode, workdir)
    logger.debug("Settings: %s", settings.model_dump())

    if args.mode == "api":
        _export_overrides()
        # Lazy import to avoid web dependencies if not needed
        from codeloop.api.app import run_api  # pylint: disable=import-outside-toplevel

        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
    else:
        from codeloop.agent.agent_loop import run_cli  # pylint: disable=import-outside-toplevel

        run_cli(
            planner_name=settings.PLANNER,
            workdir=settings.WORKDIR,
            max_iterations=settings.MAX_ITERATIONS,
        )


if __name__ == "__main__":
    main()
