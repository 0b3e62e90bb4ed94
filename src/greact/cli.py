"""CLI entry point for greact: init, build, run and dev commands."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from greact import __version__
from greact.builder import AssetBuilder, BuildError
from greact.config import DEFAULT_CONFIG_FILE, ConfigError, create_default_config, load_config
from greact.file_watcher import WatchError
from greact.session import DevSession, run_server

LOG_FORMAT = "[greact] %(message)s"


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stdout with the ``[greact]`` prefix."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stdout,
        force=True,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="greact",
        description="Build and develop server-rendered React pages.",
        epilog="Examples:\n"
        "  greact init                   # Create greact.toml\n"
        "  greact build -c site.toml     # Build pages with a custom config\n"
        "  greact build --dev            # Build pages with the live-reload script\n"
        "  greact dev                    # Rebuild, restart and live-reload on change",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug output",
    )

    # Every command takes the config flag
    config_parent = argparse.ArgumentParser(add_help=False)
    config_parent.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG_FILE,
        help=f"Path to config file (default: {DEFAULT_CONFIG_FILE})",
    )

    commands = parser.add_subparsers(dest="command", metavar="command")
    commands.required = True
    commands.add_parser("init", parents=[config_parent], help="create a default config file")
    build_parser = commands.add_parser("build", parents=[config_parent], help="build the react pages")
    build_parser.add_argument(
        "--dev",
        action="store_true",
        help="Inject the live-reload script into the generated pages",
    )
    commands.add_parser("run", parents=[config_parent], help="build, then start the server")
    commands.add_parser("dev", parents=[config_parent], help="build, serve and rebuild on change")

    return parser.parse_args(argv)


def _fail(message: str) -> None:
    print(f"[greact] error: {message}", file=sys.stderr)
    sys.exit(1)


def init_command(args: argparse.Namespace, config_path: Path) -> None:
    if create_default_config(config_path):
        print(f"Created default config at: {config_path}")
    else:
        print(f"Config already exists: {config_path}")


def build_command(args: argparse.Namespace, config_path: Path) -> None:
    config = load_config(config_path)
    asyncio.run(AssetBuilder(config, dev=args.dev).build())


def run_command(args: argparse.Namespace, config_path: Path) -> None:
    config = load_config(config_path)
    returncode = asyncio.run(run_server(config))
    if returncode:
        _fail(f"server exited with status {returncode}")


def dev_command(args: argparse.Namespace, config_path: Path) -> None:
    config = load_config(config_path)
    asyncio.run(DevSession(config).run())


COMMANDS = {
    "init": init_command,
    "build": build_command,
    "run": run_command,
    "dev": dev_command,
}


def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the greact CLI.

    Handles:
    - Argument parsing and logging setup
    - Dispatch to the selected command
    - Error handling and exit codes
    """
    args = parse_args(argv)
    configure_logging(args.verbose)

    config_path = Path(args.config).resolve()

    try:
        COMMANDS[args.command](args, config_path)
    except KeyboardInterrupt:
        # Only reachable where the loop could not install signal handlers
        sys.exit(130)
    except (FileNotFoundError, ConfigError, WatchError, BuildError) as e:
        _fail(str(e))
    except (PermissionError, OSError) as e:
        _fail(str(e))


if __name__ == "__main__":
    main()
