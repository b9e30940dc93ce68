from http import HTTPStatus
from typing import BinaryIO, Protocol

from ..core.models import (
    HttpResult,
    Metadata,
    PackageEntry,
    PackageFeed,
    PackageIdentity,
    PackageSource,
)


class ProtocolClient(Protocol):
    """Protocol for raw package source operations"""

    async def get_metadata(self, source: PackageSource) -> Metadata:
        """Fetch the service metadata of a source"""
        ...

    async def push_package(self, source: PackageSource, package: BinaryIO) -> HTTPStatus:
        """Upload a package stream"""
        ...

    async def delete_package(
        self, source: PackageSource, package: PackageIdentity
    ) -> HTTPStatus:
        """Delete (unlist) a package"""
        ...

    async def get_package_entry(
        self, source: PackageSource, package: PackageIdentity
    ) -> HttpResult[PackageEntry]:
        """Look up a single package entry by identity"""
        ...

    async def get_package_collection(
        self, source: PackageSource, filter: str
    ) -> HttpResult[PackageFeed]:
        """Query the package collection with an OData filter"""
        ...


class PackageReader(Protocol):
    """Protocol for reading package identity out of a package stream"""

    def get_package_identity(self, package: BinaryIO) -> PackageIdentity:
        """Read the (id, version) of a package"""
        ...
