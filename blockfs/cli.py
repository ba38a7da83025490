"""CLI entry point for inspecting and editing container filesystems.

Usage:
    blockfs --container data.fs init --capacity 4194304
    blockfs put ./report.pdf docs/report.pdf
    blockfs ls docs/
    blockfs get docs/report.pdf ./copy.pdf
"""

import argparse
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional, Sequence

from blockfs.base import ContainerError
from blockfs.factory import open_filesystem
from blockfs.filesystem import ContainerFileSystem
from core.config import get_settings
from core.logging import bind_container, configure_logging, get_logger


logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blockfs",
        description="Store many files inside a single container file",
    )
    parser.add_argument(
        "--container",
        default=None,
        help="Container file (default: BLOCKFS_CONTAINER_PATH or container.fs)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Create a new, empty container")
    init.add_argument("--capacity", type=int, default=None, help="Capacity in bytes")
    init.add_argument("--block-size", type=int, default=None, help="Block size in bytes")

    ls = sub.add_parser("ls", help="List files, optionally under a prefix")
    ls.add_argument("prefix", nargs="?", default="")
    ls.add_argument("-l", "--long", action="store_true", help="Show sizes")

    put = sub.add_parser("put", help="Copy a host file into the container")
    put.add_argument("source", type=Path)
    put.add_argument("dest", nargs="?", default=None, help="Path inside the container")

    append = sub.add_parser("append", help="Append a host file to a container file")
    append.add_argument("source", type=Path)
    append.add_argument("dest")

    get = sub.add_parser("get", help="Copy a container file out (stdout when no output given)")
    get.add_argument("path")
    get.add_argument("output", nargs="?", type=Path, default=None)

    rm = sub.add_parser("rm", help="Delete a file")
    rm.add_argument("path")

    mv = sub.add_parser("mv", help="Rename a file")
    mv.add_argument("source")
    mv.add_argument("dest")

    sub.add_parser("stat", help="Show usage figures")
    sub.add_parser("compact", help="Pack data and shrink the container file")

    return parser


def _open(args: argparse.Namespace) -> ContainerFileSystem:
    return open_filesystem(get_settings(), args.container, create=False)


def _init(args: argparse.Namespace) -> int:
    settings = get_settings()
    path = args.container or settings.container_path
    with ContainerFileSystem.create_new(
        path,
        args.capacity or settings.default_capacity_bytes,
        block_size=args.block_size or settings.block_size_bytes,
        data_region_ratio=settings.data_region_ratio,
        sync_writes=True,
    ) as fs:
        stats = fs.stats()
    print(f"created {path}: {stats.total_blocks} blocks of {stats.block_size} bytes")
    return 0


def _ls(args: argparse.Namespace) -> int:
    with _open(args) as fs:
        for name in fs.list_files_under_prefix(args.prefix):
            if args.long:
                metadata = fs.get_file_metadata(name)
                print(f"{metadata.size:>12}  {name}")
            else:
                print(name)
    return 0


def _put(args: argparse.Namespace) -> int:
    dest = args.dest or args.source.name
    with _open(args) as fs:
        size = fs.write_file(dest, args.source.read_bytes())
    logger.info("Stored file", source=str(args.source), dest=dest, size=size)
    return 0


def _append(args: argparse.Namespace) -> int:
    with _open(args) as fs:
        size = fs.append_to_file(args.dest, args.source.read_bytes())
    logger.info("Appended file", source=str(args.source), dest=args.dest, size=size)
    return 0


def _get(args: argparse.Namespace) -> int:
    with _open(args) as fs:
        data = fs.read_file(args.path)
    if data is None:
        print(f"blockfs: no such file: {args.path}", file=sys.stderr)
        return 1
    if args.output is None:
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
    else:
        args.output.write_bytes(data)
    return 0


def _rm(args: argparse.Namespace) -> int:
    with _open(args) as fs:
        if not fs.delete_file(args.path):
            print(f"blockfs: no such file: {args.path}", file=sys.stderr)
            return 1
    return 0


def _mv(args: argparse.Namespace) -> int:
    with _open(args) as fs:
        fs.move_file(args.source, args.dest)
    return 0


def _stat(args: argparse.Namespace) -> int:
    with _open(args) as fs:
        stats = fs.stats()
    for field, value in asdict(stats).items():
        print(f"{field}: {value}")
    return 0


def _compact(args: argparse.Namespace) -> int:
    with _open(args) as fs:
        result = fs.compact()
    print(f"{result.size_before} -> {result.size_after} bytes ({result.bytes_reclaimed} reclaimed)")
    return 0


COMMANDS = {
    "init": _init,
    "ls": _ls,
    "put": _put,
    "append": _append,
    "get": _get,
    "rm": _rm,
    "mv": _mv,
    "stat": _stat,
    "compact": _compact,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse arguments and run one subcommand. Returns the exit code."""
    configure_logging()
    args = build_parser().parse_args(argv)
    bind_container(args.container or get_settings().container_path)

    try:
        return COMMANDS[args.command](args)
    except ContainerError as e:
        logger.error("Command failed", command=args.command, error=str(e))
        print(f"blockfs: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"blockfs: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
