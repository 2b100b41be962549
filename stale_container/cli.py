#!/usr/bin/env python3
"""CLI entry point for stale-container."""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

import httpx

from . import __version__
from .client import RemoteClient
from .config import DEFAULT_PORT, Config
from .evaluation import local_evaluation
from .exceptions import StaleContainerError
from .models import Evaluation
from .registry import RegistryClient
from .server import run_server

OUTPUT_FORMATS = ["text", "json"]

logger = logging.getLogger(__name__)


# ANSI color codes for terminal output
class Colors:
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BOLD = '\033[1m'
    END = '\033[0m'

    @classmethod
    def disable(cls):
        """Disable colors (for non-TTY output)."""
        cls.BLUE = ''
        cls.CYAN = ''
        cls.GREEN = ''
        cls.YELLOW = ''
        cls.RED = ''
        cls.BOLD = ''
        cls.END = ''


def supports_color() -> bool:
    """Check if the terminal supports color output."""
    if not hasattr(sys.stdout, 'isatty'):
        return False
    if not sys.stdout.isatty():
        return False
    return True


def print_success(message: str):
    """Print a success message."""
    print(f"{Colors.GREEN}✓ {message}{Colors.END}")


def print_warning(message: str):
    """Print a warning message."""
    print(f"{Colors.YELLOW}⚠ {message}{Colors.END}")


def print_error(message: str):
    """Print an error message."""
    print(f"{Colors.RED}✗ {message}{Colors.END}")


def print_info(message: str):
    """Print an info message."""
    print(f"{Colors.CYAN}ℹ {message}{Colors.END}")


def env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise SystemExit(f"{name} must be an integer, got {value!r}")


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stale-container",
        description="Find out whether a container image has a newer tag that satisfies a version constraint",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:

  # Check an image against its registry
  %(prog)s check --constraint ">= 1.5.0 < 1.6.0" influxdb:1.5.0

  # Keep a suffixed release track
  %(prog)s check --constraint ">= 1.5.0 < 1.6.0" --tagPrefix alpine- nginx:alpine-1.5.0

  # Ask a running server instead of the registry
  %(prog)s check --server http://localhost:5000 --constraint ">= 1.5.0" influxdb:1.5.0

  # Serve the HTTP API
  %(prog)s server --port 5000
""",
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config", "-c",
        metavar="FILE",
        default=os.environ.get("STALE_CONFIG_FILE"),
        help="JSON configuration file [env: STALE_CONFIG_FILE]",
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        default=env_flag("STALE_DEBUG"),
        help="Enable debug logging [env: STALE_DEBUG]",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    check = subparsers.add_parser(
        "check",
        help="Check whether an image is stale",
        description="Check whether IMAGE can be upgraded to a tag that still satisfies the constraint",
    )
    check.add_argument("image", metavar="IMAGE", help="Image reference, e.g. influxdb:1.5.0")
    check.add_argument(
        "--constraint",
        metavar="EXPR",
        default=os.environ.get("STALE_CONSTRAINT"),
        help="Version constraint, e.g. '>= 1.5.0 < 1.6.0' [env: STALE_CONSTRAINT]",
    )
    check.add_argument(
        "--server", "-s",
        metavar="URL",
        default=os.environ.get("STALE_SERVER"),
        help="Evaluate on a remote stale-container server [env: STALE_SERVER]",
    )
    check.add_argument(
        "--output", "-o",
        metavar="FORMAT",
        default=os.environ.get("STALE_OUTPUT") or "text",
        help="Output format: text or json (default: text) [env: STALE_OUTPUT]",
    )
    check.add_argument(
        "--tagPrefix", "--tag-prefix",
        dest="tag_prefix",
        metavar="PREFIX",
        default=os.environ.get("STALE_TAG_PREFIX") or "",
        help="Prefix shared by the tags of the image [env: STALE_TAG_PREFIX]",
    )
    check.add_argument(
        "--timeout",
        type=float,
        metavar="SECONDS",
        default=None,
        help="Give up waiting on the remote server after this many seconds",
    )

    server = subparsers.add_parser(
        "server",
        help="Serve the HTTP API",
        description="Serve the HTTP API, evaluating images in background jobs",
    )
    server.add_argument(
        "--host",
        default="0.0.0.0",
        help="Address to bind (default: 0.0.0.0)",
    )
    server.add_argument(
        "--port", "-p",
        type=int,
        default=env_int("STALE_PORT", DEFAULT_PORT),
        help=f"Port to listen on (default: {DEFAULT_PORT}) [env: STALE_PORT]",
    )
    server.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Number of background job workers (overrides the configuration file)",
    )

    return parser


def load_config(path: Optional[str]) -> Config:
    if not path:
        return Config()
    logger.debug(f"Loading configuration from {path}")
    return Config.from_file(path)


def remote_evaluation(args, show_progress: bool) -> Evaluation:
    with RemoteClient(args.server) as client:
        remote = client.check(args.image, args.constraint, args.tag_prefix)
        if not show_progress or remote.is_ready():
            return remote.wait(timeout=args.timeout)

        from rich.progress import Progress, SpinnerColumn, TextColumn
        from rich.console import Console

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=Console(),
            transient=True,
        ) as progress:
            task = progress.add_task(f"Waiting for remote evaluation from {args.server}...", total=None)
            evaluation = remote.wait(
                timeout=args.timeout,
                on_poll=lambda attempt: progress.update(
                    task,
                    description=f"Waiting for remote evaluation from {args.server} (poll {attempt})",
                ),
            )
            progress.update(task, completed=True)
        return evaluation


def report(evaluation: Evaluation, output: str) -> int:
    """Print the evaluation; returns the exit code."""
    if output == "json":
        print(json.dumps(evaluation.to_dict(), indent=2))
        return 0

    if not evaluation.stale:
        print_success(
            f"{evaluation.image} is already the latest version available that satisfies "
            f"the '{evaluation.constraint}' constraint and the tag prefix '{evaluation.tag_prefix}'"
        )
        return 0

    print_warning(
        f"The '{evaluation.image}' container image can be upgraded from the "
        f"'{evaluation.current_version}' tag to the '{evaluation.next_version}' one "
        f"and still satisfy the '{evaluation.constraint}' constraint."
    )
    return 1


def check_image(args) -> int:
    if not args.constraint:
        print_error("A constraint is required: use --constraint or STALE_CONSTRAINT")
        return 1
    if args.output not in OUTPUT_FORMATS:
        print_error(f"Invalid output format: {args.output}. Valid ones are {', '.join(OUTPUT_FORMATS)}")
        return 1

    if args.server:
        if args.config:
            logger.warning("--config is ignored when --server is used")
            print_warning("--config is ignored when --server is used")
        show_progress = args.output == "text" and supports_color()
        evaluation = remote_evaluation(args, show_progress)
    else:
        config = load_config(args.config)
        with RegistryClient(config) as registry:
            evaluation = local_evaluation(args.image, args.constraint, args.tag_prefix, registry)

    return report(evaluation, args.output)


def serve(args) -> int:
    config = load_config(args.config)
    if args.workers is not None:
        config.job_workers = args.workers
        if config.job_workers < 1:
            print_error(f"--workers must be at least 1, got {args.workers}")
            return 1

    print_info(f"stale-container {__version__} listening on {args.host}:{args.port}")
    run_server(config, host=args.host, port=args.port, log_level="debug" if args.debug else "info")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    # Pre-parse to check for --no-color before creating parser
    if '--no-color' in argv or not supports_color():
        Colors.disable()

    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    # Configure logging
    if args.debug:
        log_level = logging.DEBUG
    elif args.command == "server":
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        if args.command == "server":
            return serve(args)
        return check_image(args)
    except StaleContainerError as e:
        print_error(str(e))
        return 1
    except httpx.HTTPError as e:
        print_error(f"Connection error: {e}")
        return 1
    except (OSError, ValueError) as e:
        print_error(f"Invalid input: {e}")
        return 1
    except KeyboardInterrupt:
        print()
        print_warning("Interrupted by user")
        return 130
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        print_error(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
