"""Command line entry point for pulldeploy."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence

import httpx

from pulldeploy import __version__
from pulldeploy.config import get_settings, load_deploy_config, write_default_config
from pulldeploy.errors import ConfigError, PullDeployError
from pulldeploy.logging import get_logger, setup_logging
from pulldeploy.pipeline import DeploymentPipeline
from pulldeploy.watcher import CommitWatcher

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pulldeploy",
        description="Watch a GitHub repository and deploy every new commit as systemd services.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    run_parser = sub.add_parser("run", help="Start the commit watcher")
    run_parser.add_argument(
        "--config",
        help="Path to the deployment config file (default: $PULLDEPLOY_CONFIG_PATH)",
    )
    run_parser.add_argument(
        "--once",
        action="store_true",
        help="Poll once, deploy if there is a commit, then exit",
    )

    init_parser = sub.add_parser("init-config", help="Write an example config file")
    init_parser.add_argument("path", nargs="?", help="Where to write it (default: config path)")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing file")
    return parser


async def _watch(watcher: CommitWatcher, once: bool) -> None:
    if not once:
        await watcher.run_forever()
        return
    try:
        await watcher.poll_once("")
    finally:
        await watcher.close()


def _cmd_run(args: argparse.Namespace) -> int:
    settings = get_settings()
    log = get_logger("pulldeploy.cli")

    try:
        config = load_deploy_config(args.config or settings.config_path)
        repository = config.repository_ref(settings)
    except ConfigError as exc:
        log.error("config_invalid", error=str(exc))
        return EXIT_CONFIG

    log.info(
        "starting_pulldeploy",
        version=__version__,
        environment=settings.environment,
        repository=repository.full_name,
        branch=config.branch,
        services=[s.name for s in config.services],
    )

    pipeline = DeploymentPipeline(config, repository, settings=settings)
    watcher = CommitWatcher(
        repository,
        config.token.get_secret_value(),
        pipeline,
        settings=settings,
    )

    try:
        asyncio.run(_watch(watcher, args.once))
    except KeyboardInterrupt:
        log.info("shutdown_requested")
    except (PullDeployError, httpx.TransportError) as exc:
        log.error("pulldeploy_stopped", error=str(exc), error_type=type(exc).__name__)
        return EXIT_FATAL
    return EXIT_OK


def _cmd_init_config(args: argparse.Namespace) -> int:
    path = args.path or get_settings().config_path
    try:
        written = write_default_config(path, force=args.force)
    except (ConfigError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    print(f"Wrote example config to {written}")
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_CONFIG

    setup_logging()
    if args.command == "init-config":
        return _cmd_init_config(args)
    return _cmd_run(args)


def run() -> None:
    """Run the application."""
    sys.exit(main())


if __name__ == "__main__":
    run()
