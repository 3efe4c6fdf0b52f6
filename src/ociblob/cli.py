"""CLI entry point for ociblob."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import BinaryIO

from ociblob import metrics
from ociblob.config import AppConfig, OCIConfig, apply_environment, load_config
from ociblob.errors import BackendError
from ociblob.layout import S3_LEGACY_LAYOUT, DefaultLayout
from ociblob.logging_config import configure_logging
from ociblob.models import FileInfo, FileType, Handle
from ociblob.oci_backend import OCIBackend, create_backend, open_backend
from ociblob.readers import FileReader

logger = logging.getLogger("ociblob")

REPOSITORY_ENV_VAR = "OCIBLOB_REPOSITORY"

_MIGRATE_TYPES = (
    FileType.PACK,
    FileType.KEY,
    FileType.LOCK,
    FileType.SNAPSHOT,
    FileType.INDEX,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="ociblob",
        description="ociblob - repository storage on OCI Object Storage",
    )
    parser.add_argument(
        "-r",
        "--repo",
        type=str,
        default=None,
        help=f"Repository as oci:bucket[/prefix] (default: ${REPOSITORY_ENV_VAR})",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    parser.add_argument(
        "--sdk-debug",
        action="store_true",
        help="Also show DEBUG records of the OCI SDK and urllib3",
    )
    parser.add_argument(
        "--metrics-file",
        type=Path,
        default=None,
        help="Enable metrics and write them to this file after the command",
    )

    types = [t.value for t in FileType]
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create the bucket if it does not exist")

    ls = sub.add_parser("ls", help="List files of a type")
    ls.add_argument("type", choices=[t for t in types if t != FileType.CONFIG.value])
    ls.add_argument("-l", "--long", action="store_true", help="Show sizes")

    stat = sub.add_parser("stat", help="Show the size of a file")
    stat.add_argument("type", choices=types)
    stat.add_argument("name", nargs="?", default="")

    cat = sub.add_parser("cat", help="Write (part of) a file to stdout")
    cat.add_argument("type", choices=types)
    cat.add_argument("name", nargs="?", default="")
    cat.add_argument("--offset", type=int, default=0)
    cat.add_argument("--length", type=int, default=0, help="0 reads to the end")

    put = sub.add_parser("put", help="Upload a local file")
    put.add_argument("type", choices=types)
    put.add_argument("name")
    put.add_argument("file", type=Path)

    rm = sub.add_parser("rm", help="Remove a file")
    rm.add_argument("type", choices=types)
    rm.add_argument("name", nargs="?", default="")

    sub.add_parser(
        "migrate-layout",
        help="Move all files from the s3legacy layout to the default layout",
    )
    return parser.parse_args(argv)


async def migrate_layout(be: OCIBackend) -> int:
    """Rename every file of *be* into the default layout.

    At most ``be.connections()`` renames run at the same time.

    Returns:
        The number of files processed.
    """
    target = DefaultLayout(be.path())
    sem = asyncio.Semaphore(be.connections())
    handles: list[Handle] = []

    for t in _MIGRATE_TYPES:

        async def collect(fi: FileInfo, t: FileType = t) -> None:
            handles.append(Handle(t, fi.name))

        await be.list(t, collect)

    async def rename(h: Handle) -> None:
        async with sem:
            await be.rename(h, target)

    async with asyncio.TaskGroup() as tg:
        for h in handles:
            tg.create_task(rename(h))

    logger.info("Migrated %d files to the default layout", len(handles))
    return len(handles)


async def run(args: argparse.Namespace, cfg: OCIConfig) -> None:
    """Open the backend and execute the selected command."""
    if args.command == "migrate-layout":
        cfg = cfg.model_copy(update={"layout": S3_LEGACY_LAYOUT})

    if args.command == "init":
        be = await create_backend(cfg)
    else:
        be = await open_backend(cfg)

    try:
        match args.command:
            case "init":
                logger.info("Repository location %s is ready", be.location())
            case "ls":

                async def show(fi: FileInfo) -> None:
                    print(f"{fi.name}\t{fi.size}" if args.long else fi.name)

                await be.list(FileType(args.type), show)
            case "stat":
                fi = await be.stat(Handle(FileType(args.type), args.name))
                print(f"{fi.name}\t{fi.size}")
            case "cat":

                async def write(rd: BinaryIO) -> None:
                    sys.stdout.buffer.write(rd.read())
                    sys.stdout.buffer.flush()

                await be.load(
                    Handle(FileType(args.type), args.name), args.length, args.offset, write
                )
            case "put":
                with open(args.file, "rb") as fh:
                    await be.save(Handle(FileType(args.type), args.name), FileReader(fh))
            case "rm":
                await be.remove(Handle(FileType(args.type), args.name))
            case "migrate-layout":
                await migrate_layout(be)
    finally:
        await be.close()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the ociblob CLI.

    Loads configuration, overlays the environment and runs the command.
    With a metrics file configured, metrics are enabled and written there
    after the command, also when it failed.
    Exits with status 1 on configuration or backend errors.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    app_config = AppConfig()
    if args.config is not None:
        try:
            app_config = load_config(args.config)
        except FileNotFoundError:
            logger.error("Config file not found: %s", args.config)
            sys.exit(1)
        except Exception as exc:
            logger.error("Failed to load config: %s", exc)
            sys.exit(1)

    configure_logging(
        level=args.log_level or app_config.logging.level,
        fmt=args.log_format or app_config.logging.format,
        sdk_debug=args.sdk_debug or app_config.logging.sdk_debug,
    )

    metrics_file = args.metrics_file or app_config.metrics.textfile
    if metrics_file:
        metrics.init_metrics()

    failed = False
    try:
        repo = args.repo or os.environ.get(REPOSITORY_ENV_VAR, "")
        cfg = apply_environment(app_config.backend_config(repo), os.environ)
        asyncio.run(run(args, cfg))
    except* BackendError as group:
        for exc in group.exceptions:
            logger.error("%s", exc)
        failed = True

    if metrics_file:
        metrics.write_textfile(metrics_file)
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
