import asyncio
import logging
import time
from datetime import timedelta
from http import HTTPStatus
from typing import BinaryIO, Optional

from .cache import MetadataCache
from .core.enums import FilterStrategy
from .core.exceptions import ProtocolContractError
from .core.models import (
    ConditionalPushResult,
    HttpResult,
    Metadata,
    PackageEntry,
    PackageFeed,
    PackageIdentity,
    PackageSource,
)
from .polling import Clock, Sleep, poll_until
from .protocol.base import PackageReader, ProtocolClient

logger = logging.getLogger(__name__)

POLL_INTERVAL = timedelta(seconds=1)
POLL_TIMEOUT = timedelta(minutes=20)

IMPOSSIBLE_ID_PREFIX = "!IMPOSSIBLE!"


def build_filter(package: PackageIdentity, strategy: FilterStrategy) -> str:
    """Build an OData $filter matching exactly one id and version"""
    package_id = package.id.replace("'", "''")
    version = package.version.replace("'", "''")
    expression = f"Id eq '{package_id}' and Version eq '{version}'"
    if strategy == FilterStrategy.CUSTOM:
        # Always true, but keeps servers from short-circuiting to an exact key lookup
        expression += f" and not startswith(Id, '{IMPOSSIBLE_ID_PREFIX}')"
    return expression


class Client:
    """Package source client that is aware of eventually consistent feeds"""

    def __init__(
        self,
        protocol: ProtocolClient,
        package_reader: PackageReader,
        *,
        metadata_cache: Optional[MetadataCache] = None,
        poll_interval: timedelta = POLL_INTERVAL,
        poll_timeout: timedelta = POLL_TIMEOUT,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.protocol = protocol
        self.package_reader = package_reader
        self.metadata_cache = (
            metadata_cache
            if metadata_cache is not None
            else MetadataCache(protocol.get_metadata)
        )
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self._clock = clock
        self._sleep = sleep

    async def get_metadata(self, source: PackageSource) -> Metadata:
        """Get source metadata, fetched at most once per source"""
        return await self.metadata_cache.get(source)

    async def push_package(self, source: PackageSource, package: BinaryIO) -> HTTPStatus:
        """Upload a package stream as-is"""
        return await self.protocol.push_package(source, package)

    async def delete_package(
        self, source: PackageSource, package: PackageIdentity
    ) -> HTTPStatus:
        """Delete (unlist) a package"""
        return await self.protocol.delete_package(source, package)

    async def get_package_entry(
        self, source: PackageSource, package: PackageIdentity
    ) -> HttpResult[PackageEntry]:
        """Look up a single package entry by identity"""
        return await self.protocol.get_package_entry(source, package)

    async def get_package_collection(
        self, source: PackageSource, filter: str
    ) -> HttpResult[PackageFeed]:
        """Query the package collection with an OData filter"""
        return await self.protocol.get_package_collection(source, filter)

    async def get_package_entry_from_collection_with_custom_filter(
        self, source: PackageSource, package: PackageIdentity
    ) -> HttpResult[PackageEntry]:
        """Collection lookup with the tautology-augmented filter"""
        return await self.get_package_entry_from_collection(
            source, package, FilterStrategy.CUSTOM
        )

    async def get_package_entry_from_collection_with_simple_filter(
        self, source: PackageSource, package: PackageIdentity
    ) -> HttpResult[PackageEntry]:
        """Collection lookup with the exact-match filter"""
        return await self.get_package_entry_from_collection(
            source, package, FilterStrategy.SIMPLE
        )

    async def get_package_entry_from_collection(
        self,
        source: PackageSource,
        package: PackageIdentity,
        strategy: FilterStrategy = FilterStrategy.SIMPLE,
    ) -> HttpResult[PackageEntry]:
        """
        Look up a single entry through a filtered collection query.

        Zero matches become 404 Not Found. More than one match for an id and
        version violates the protocol and raises ProtocolContractError.
        """
        result = await self.get_package_collection(source, build_filter(package, strategy))
        if not result.is_ok:
            return HttpResult[PackageEntry].of_status(result.status_code)

        entries = result.data.entries
        if not entries:
            return HttpResult[PackageEntry].of_status(HTTPStatus.NOT_FOUND)
        if len(entries) > 1:
            raise ProtocolContractError(
                f"Either zero or one results are expected for {package}. "
                f"{len(entries)} were returned."
            )

        return HttpResult[PackageEntry].ok(entries[0])

    async def push_package_if_not_exists(
        self, source: PackageSource, package: BinaryIO
    ) -> ConditionalPushResult:
        """
        Push a package unless it is already present, then wait for it to show up.

        The stream is rewound after reading its identity so the push sends the
        whole package. After the push the entry is polled every poll_interval
        until it is visible or poll_timeout has elapsed since the push started.
        """
        identity = self._read_identity(package)
        return await self._push_if_not_exists(source, package, identity)

    async def push_and_unlist_package_if_not_exists(
        self, source: PackageSource, package: BinaryIO
    ) -> ConditionalPushResult:
        """Conditionally push a package, then always delete (unlist) it"""
        identity = self._read_identity(package)
        result = await self._push_if_not_exists(source, package, identity)

        unlist_status = await self.delete_package(source, identity)
        if not 200 <= unlist_status < 300:
            logger.warning(f"Unlisting {identity} from {source.key} returned {int(unlist_status)}")
        else:
            logger.info(f"Unlisted {identity} from {source.key}")

        return result.model_copy(update={"unlist_status_code": unlist_status})

    def _read_identity(self, package: BinaryIO) -> PackageIdentity:
        package.seek(0)
        identity = self.package_reader.get_package_identity(package)
        package.seek(0)
        return identity

    async def _push_if_not_exists(
        self, source: PackageSource, package: BinaryIO, identity: PackageIdentity
    ) -> ConditionalPushResult:
        before_push = await self.get_package_entry(source, identity)
        if before_push.is_ok:
            logger.info(f"Package {identity} already exists on {source.key}")
            return ConditionalPushResult(
                package_already_exists=True,
                package_result=before_push,
            )

        if before_push.status_code != HTTPStatus.NOT_FOUND:
            logger.warning(
                f"Existence check for {identity} on {source.key} returned "
                f"{int(before_push.status_code)}, treating the package as absent"
            )
        else:
            logger.info(f"Package {identity} does not exist on {source.key}")

        started_at = self._clock()
        push_status = await self.push_package(source, package)
        time_to_push = timedelta(seconds=self._clock() - started_at)
        logger.info(
            f"Pushed {identity} to {source.key}: {int(push_status)} "
            f"in {time_to_push.total_seconds():.2f}s"
        )

        async def check() -> HttpResult[PackageEntry]:
            result = await self.get_package_entry(source, identity)
            if result.status_code == HTTPStatus.NOT_FOUND:
                logger.debug(f"Package {identity} is not available yet")
            return result

        after_push = await poll_until(
            check,
            lambda result: result.status_code != HTTPStatus.NOT_FOUND,
            interval=self.poll_interval,
            timeout=self.poll_timeout,
            clock=self._clock,
            sleep=self._sleep,
            started_at=started_at,
        )

        available = after_push is not None and after_push.is_ok
        time_to_be_available = None
        if available:
            time_to_be_available = timedelta(seconds=self._clock() - started_at)
            logger.info(
                f"Package {identity} became available after "
                f"{time_to_be_available.total_seconds():.2f}s"
            )
        elif after_push is None or after_push.status_code == HTTPStatus.NOT_FOUND:
            logger.warning(
                f"Package {identity} did not become available within {self.poll_timeout}"
            )
        else:
            logger.warning(
                f"Polling for {identity} stopped on status {int(after_push.status_code)}"
            )

        return ConditionalPushResult(
            package_already_exists=False,
            package_result=after_push,
            package_pushed_successfully=available,
            push_status_code=push_status,
            time_to_push=time_to_push,
            time_to_be_available=time_to_be_available,
        )
