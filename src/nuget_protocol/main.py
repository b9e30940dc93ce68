import argparse
import asyncio
import io
import logging
import sys
from pathlib import Path
from typing import List, Optional

import aiofiles
from pydantic import BaseModel

from .client import Client
from .config.logging import setup_logging
from .core.enums import FilterStrategy
from .core.exceptions import NuGetProtocolError
from .core.models import ClientConfig, PackageIdentity
from .protocol.v2 import V2Protocol
from .reader import NupkgReader

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="NuGet V2 protocol client")
    parser.add_argument("--config", "-c", type=Path, help="TOML configuration file")
    parser.add_argument("--timeout", type=float, help="HTTP timeout in seconds")
    parser.add_argument("--log-level", help="Log level (default: INFO)")

    commands = parser.add_subparsers(dest="command", required=True)

    metadata = commands.add_parser("metadata", help="Show the $metadata of a source")
    metadata.add_argument("source", help="Source name from config, or a feed URL")

    exists = commands.add_parser("exists", help="Look up a package entry")
    exists.add_argument("source", help="Source name from config, or a feed URL")
    exists.add_argument("id", help="Package id")
    exists.add_argument("version", help="Package version")
    exists.add_argument(
        "--filter",
        choices=["entry"] + [strategy.value for strategy in FilterStrategy],
        default="entry",
        help="Look up by entry key or through a filtered collection query",
    )

    push = commands.add_parser("push", help="Push a package unless it already exists")
    push.add_argument("source", help="Source name from config, or a feed URL")
    push.add_argument("package", type=Path, help="Path to a .nupkg file")
    push.add_argument(
        "--unlist", action="store_true", help="Unlist the package after pushing"
    )

    return parser.parse_args(argv)


async def read_package(path: Path) -> io.BytesIO:
    """Load a package file into a seekable in-memory stream"""
    async with aiofiles.open(path, "rb") as f:
        return io.BytesIO(await f.read())


async def run(args: argparse.Namespace, config: ClientConfig) -> BaseModel:
    source = config.resolve_source(args.source)
    timeout = args.timeout if args.timeout is not None else config.timeout

    async with V2Protocol(timeout=timeout) as protocol:
        client = Client(protocol, NupkgReader())

        if args.command == "metadata":
            return await client.get_metadata(source)

        if args.command == "exists":
            identity = PackageIdentity(id=args.id, version=args.version)
            if args.filter == "entry":
                return await client.get_package_entry(source, identity)
            return await client.get_package_entry_from_collection(
                source, identity, FilterStrategy(args.filter)
            )

        package = await read_package(args.package)
        if args.unlist:
            return await client.push_and_unlist_package_if_not_exists(source, package)
        return await client.push_package_if_not_exists(source, package)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        setup_logging(args.log_level)
        config = ClientConfig.from_toml(args.config) if args.config else ClientConfig()
        if config.log_level and not args.log_level:
            setup_logging(config.log_level)
        result = asyncio.run(run(args, config))
    except NuGetProtocolError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    print(result.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
