import logging
import zipfile
from typing import BinaryIO, Optional
from xml.etree import ElementTree

from .core.exceptions import PackageReadError
from .core.models import PackageIdentity

logger = logging.getLogger(__name__)


def _find_text(root: ElementTree.Element, path: str) -> Optional[str]:
    """Find the text at a slash-separated path of local names, ignoring namespaces"""
    node: Optional[ElementTree.Element] = root
    for part in path.split("/"):
        node = next(
            (child for child in node if child.tag.rsplit("}", 1)[-1] == part), None
        )
        if node is None:
            return None
    return node.text.strip() if node.text else None


class NupkgReader:
    """Reads package identity from the .nuspec inside a .nupkg"""

    def get_package_identity(self, package: BinaryIO) -> PackageIdentity:
        package.seek(0)
        try:
            with zipfile.ZipFile(package) as archive:
                nuspec_names = [
                    name
                    for name in archive.namelist()
                    if "/" not in name and name.lower().endswith(".nuspec")
                ]
                if not nuspec_names:
                    raise PackageReadError("No .nuspec found at the package root")
                root = ElementTree.fromstring(archive.read(nuspec_names[0]))
        except (zipfile.BadZipFile, ElementTree.ParseError) as e:
            raise PackageReadError(f"Failed to read package: {str(e)}") from e

        package_id = _find_text(root, "metadata/id")
        version = _find_text(root, "metadata/version")
        if not package_id or not version:
            raise PackageReadError("The .nuspec is missing metadata/id or metadata/version")

        identity = PackageIdentity(id=package_id, version=version)
        logger.debug(f"Read package identity {identity}")
        return identity
