"""
Shared fixtures.

FakeProtocol stands in for the wire layer and FakeClock replaces both
time.monotonic and asyncio.sleep, so polling tests never wait in real time.
"""

import io
import zipfile
from http import HTTPStatus
from typing import BinaryIO, List, Optional

import pytest

from nuget_protocol.client import Client
from nuget_protocol.core.models import (
    HttpResult,
    Metadata,
    PackageEntry,
    PackageFeed,
    PackageIdentity,
    PackageSource,
)
from nuget_protocol.reader import NupkgReader

NUSPEC_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">
  <metadata>
    <id>{id}</id>
    <version>{version}</version>
    <authors>tests</authors>
    <description>Test package</description>
  </metadata>
</package>
"""


def build_nupkg(package_id: str = "Foo", version: str = "1.0.0") -> io.BytesIO:
    stream = io.BytesIO()
    with zipfile.ZipFile(stream, "w") as archive:
        archive.writestr(
            f"{package_id}.nuspec", NUSPEC_TEMPLATE.format(id=package_id, version=version)
        )
        archive.writestr("lib/net45/_._", "")
    stream.seek(0)
    return stream


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeProtocol:
    """
    In-memory protocol.

    Entry lookups answer from `entry_statuses` in order and repeat the last
    status once the list is exhausted. `calls` records every operation.
    """

    def __init__(
        self,
        clock: FakeClock,
        entry_statuses: Optional[List[HTTPStatus]] = None,
        push_status: HTTPStatus = HTTPStatus.CREATED,
        push_seconds: float = 0.5,
        delete_status: HTTPStatus = HTTPStatus.NO_CONTENT,
        collection: Optional[HttpResult[PackageFeed]] = None,
    ):
        self.clock = clock
        self.entry_statuses = list(entry_statuses or [HTTPStatus.NOT_FOUND])
        self.push_status = push_status
        self.push_seconds = push_seconds
        self.delete_status = delete_status
        self.collection = collection
        self.calls: List[str] = []
        self.pushed: List[bytes] = []
        self.filters: List[str] = []

    async def get_metadata(self, source: PackageSource) -> Metadata:
        self.calls.append("metadata")
        return Metadata(source_uri=source.key, entity_sets=["Packages"])

    async def push_package(self, source: PackageSource, package: BinaryIO) -> HTTPStatus:
        self.calls.append("push")
        self.pushed.append(package.read())
        self.clock.advance(self.push_seconds)
        return self.push_status

    async def delete_package(
        self, source: PackageSource, package: PackageIdentity
    ) -> HTTPStatus:
        self.calls.append("delete")
        return self.delete_status

    async def get_package_entry(
        self, source: PackageSource, package: PackageIdentity
    ) -> HttpResult[PackageEntry]:
        self.calls.append("entry")
        if len(self.entry_statuses) > 1:
            status = self.entry_statuses.pop(0)
        else:
            status = self.entry_statuses[0]
        if status == HTTPStatus.OK:
            return HttpResult[PackageEntry].ok(
                PackageEntry(id=package.id, version=package.version)
            )
        return HttpResult[PackageEntry].of_status(status)

    async def get_package_collection(
        self, source: PackageSource, filter: str
    ) -> HttpResult[PackageFeed]:
        self.calls.append("collection")
        self.filters.append(filter)
        return self.collection


@pytest.fixture
def source() -> PackageSource:
    return PackageSource(source_uri="https://example.org/api/v2/")


@pytest.fixture
def identity() -> PackageIdentity:
    return PackageIdentity(id="Foo", version="1.0.0")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def nupkg() -> io.BytesIO:
    return build_nupkg()


@pytest.fixture
def make_client(clock):
    def factory(**protocol_kwargs) -> Client:
        protocol = FakeProtocol(clock, **protocol_kwargs)
        return Client(protocol, NupkgReader(), clock=clock, sleep=clock.sleep)

    return factory


@pytest.fixture
def nupkg_factory():
    return build_nupkg


@pytest.fixture
def anyio_backend():
    return "asyncio"
