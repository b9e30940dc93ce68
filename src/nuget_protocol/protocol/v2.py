import logging
from http import HTTPStatus
from typing import BinaryIO, Dict, List, Optional
from urllib.parse import quote
from xml.etree import ElementTree

import httpx
from pydantic import ValidationError

from ..core.exceptions import MetadataError, ProtocolError
from ..core.models import (
    HttpResult,
    Metadata,
    PackageEntry,
    PackageFeed,
    PackageIdentity,
    PackageSource,
)

logger = logging.getLogger(__name__)

ATOM_NS = "http://www.w3.org/2005/Atom"
METADATA_NS = "http://schemas.microsoft.com/ado/2007/08/dataservices/metadata"

PACKAGE_ENTITY_TYPE = "V2FeedPackage"

# OData property name -> PackageEntry field
ENTRY_PROPERTIES = {
    "Id": "id",
    "Version": "version",
    "Listed": "listed",
    "Published": "published",
    "DownloadCount": "download_count",
}


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _odata_literal(value: str) -> str:
    """Escape a value for use inside a single-quoted OData string literal"""
    return value.replace("'", "''")


class V2Protocol:
    """NuGet V2 (OData) feed protocol over HTTP"""

    def __init__(
        self, http_client: Optional[httpx.AsyncClient] = None, timeout: float = 100.0
    ):
        self.client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "V2Protocol":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()

    async def get_metadata(self, source: PackageSource) -> Metadata:
        """Fetch and parse the $metadata document of a source"""
        url = f"{source.key}/$metadata"
        try:
            response = await self.client.get(url)
            response.raise_for_status()
            root = ElementTree.fromstring(response.content)
        except (httpx.HTTPError, ElementTree.ParseError) as e:
            raise MetadataError(f"Failed to fetch metadata for {source.key}: {str(e)}") from e

        entity_sets: List[str] = []
        package_properties: List[str] = []
        for element in root.iter():
            name = _local_name(element.tag)
            if name == "EntitySet":
                entity_sets.append(element.get("Name", ""))
            elif name == "EntityType" and element.get("Name") == PACKAGE_ENTITY_TYPE:
                package_properties.extend(
                    child.get("Name", "")
                    for child in element
                    if _local_name(child.tag) == "Property"
                )

        logger.info(
            f"Parsed metadata for {source.key}: {len(entity_sets)} entity sets, "
            f"{len(package_properties)} package properties"
        )
        return Metadata(
            source_uri=source.key,
            entity_sets=entity_sets,
            package_properties=package_properties,
        )

    async def push_package(self, source: PackageSource, package: BinaryIO) -> HTTPStatus:
        """Upload a package as multipart form data"""
        files = {"package": ("package.nupkg", package.read(), "application/octet-stream")}
        response = await self._send("PUT", f"{source.key}/package", files=files)
        return self._status(response)

    async def delete_package(
        self, source: PackageSource, package: PackageIdentity
    ) -> HTTPStatus:
        url = f"{source.key}/package/{quote(package.id)}/{quote(package.version)}"
        response = await self._send("DELETE", url)
        return self._status(response)

    async def get_package_entry(
        self, source: PackageSource, package: PackageIdentity
    ) -> HttpResult[PackageEntry]:
        """Fetch Packages(Id='..',Version='..') as a single Atom entry"""
        package_id = quote(_odata_literal(package.id), safe="")
        version = quote(_odata_literal(package.version), safe="")
        url = f"{source.key}/Packages(Id='{package_id}',Version='{version}')"
        response = await self._send("GET", url)
        status = self._status(response)
        if status != HTTPStatus.OK:
            return HttpResult[PackageEntry].of_status(status)

        root = self._parse_xml(response)
        return HttpResult[PackageEntry].ok(self._parse_entry(root))

    async def get_package_collection(
        self, source: PackageSource, filter: str
    ) -> HttpResult[PackageFeed]:
        """Query Packages() with an OData $filter expression"""
        response = await self._send(
            "GET", f"{source.key}/Packages()", params={"$filter": filter}
        )
        status = self._status(response)
        if status != HTTPStatus.OK:
            return HttpResult[PackageFeed].of_status(status)

        root = self._parse_xml(response)
        entries = [
            self._parse_entry(entry) for entry in root.findall(f"{{{ATOM_NS}}}entry")
        ]
        return HttpResult[PackageFeed].ok(PackageFeed(entries=entries))

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise ProtocolError(f"{method} {url} failed: {str(e)}") from e
        logger.debug(f"{method} {url} -> {response.status_code}")
        return response

    @staticmethod
    def _status(response: httpx.Response) -> HTTPStatus:
        try:
            return HTTPStatus(response.status_code)
        except ValueError as e:
            raise ProtocolError(
                f"Unexpected status code {response.status_code} from {response.url}"
            ) from e

    @staticmethod
    def _parse_xml(response: httpx.Response) -> ElementTree.Element:
        try:
            return ElementTree.fromstring(response.content)
        except ElementTree.ParseError as e:
            raise ProtocolError(f"Invalid XML from {response.url}: {str(e)}") from e

    @staticmethod
    def _parse_entry(entry: ElementTree.Element) -> PackageEntry:
        """Build a PackageEntry from an Atom <entry> element"""
        values: Dict[str, str] = {}
        properties = next(entry.iter(f"{{{METADATA_NS}}}properties"), None)
        if properties is not None:
            for prop in properties:
                field = ENTRY_PROPERTIES.get(_local_name(prop.tag))
                if field and prop.text is not None:
                    values[field] = prop.text

        title = entry.find(f"{{{ATOM_NS}}}title")
        if title is not None and title.text:
            values["title"] = title.text
            # Some feeds only carry the id in the entry title
            values.setdefault("id", title.text)

        try:
            return PackageEntry.model_validate(values)
        except ValidationError as e:
            raise ProtocolError(f"Invalid package entry: {str(e)}") from e
