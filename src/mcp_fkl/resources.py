"""
Read-only resource catalog for the FusedKernelLibrary MCP Server.

Resources are addressed by exact URI. Content is computed on every read and
never cached, because the underlying files may change between reads.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from mcp_fkl.errors import UnknownResourceError
from mcp_fkl.tools.library import collect_examples, read_text

if TYPE_CHECKING:
    from mcp_fkl.config import AppConfig


class ResourceSource(enum.Enum):
    """Where a resource's content comes from."""

    README = "readme"
    CMAKE_CONFIG = "cmake_config"
    EXAMPLES = "examples"


@dataclass(frozen=True)
class ResourceDescriptor:
    """Immutable description of one resource."""

    uri: str
    mime_type: str
    name: str
    description: str
    source: ResourceSource

    def to_dict(self) -> dict[str, Any]:
        """Render the descriptor as an MCP resources/list entry."""
        return {
            "uri": self.uri,
            "mimeType": self.mime_type,
            "name": self.name,
            "description": self.description,
        }


@dataclass(frozen=True)
class ResourceContent:
    """Content of one resource read."""

    uri: str
    mime_type: str
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"uri": self.uri, "mimeType": self.mime_type, "text": self.text}


RESOURCE_DESCRIPTORS: tuple[ResourceDescriptor, ...] = (
    ResourceDescriptor(
        uri="fusedkernel://readme",
        mime_type="text/markdown",
        name="FusedKernelLibrary README",
        description="Main documentation for the library",
        source=ResourceSource.README,
    ),
    ResourceDescriptor(
        uri="fusedkernel://cmake-config",
        mime_type="text/plain",
        name="CMake Configuration",
        description="CMake build configuration",
        source=ResourceSource.CMAKE_CONFIG,
    ),
    ResourceDescriptor(
        uri="fusedkernel://examples",
        mime_type="application/json",
        name="Code Examples",
        description="Available code examples and their descriptions",
        source=ResourceSource.EXAMPLES,
    ),
)


class ResourceCatalog:
    """
    Static catalog of readable resources.

    Example:
        >>> catalog = ResourceCatalog(config)
        >>> content = await catalog.read("fusedkernel://examples")
        >>> content.mime_type
        'application/json'
    """

    def __init__(
        self,
        config: AppConfig,
        descriptors: tuple[ResourceDescriptor, ...] = RESOURCE_DESCRIPTORS,
    ) -> None:
        """
        Initialize the catalog.

        Raises:
            ValueError: If two descriptors share a URI.
        """
        self.config = config
        self._descriptors: dict[str, ResourceDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.uri in self._descriptors:
                raise ValueError(f"Resource '{descriptor.uri}' is already registered")
            self._descriptors[descriptor.uri] = descriptor

    def list_descriptors(self) -> list[ResourceDescriptor]:
        """Return all descriptors in catalog order."""
        return list(self._descriptors.values())

    async def read(self, uri: str) -> ResourceContent:
        """
        Read a resource by exact URI.

        Args:
            uri: Resource URI.

        Returns:
            Freshly computed ResourceContent.

        Raises:
            UnknownResourceError: If no resource has this URI.
            OSError: If a backing file cannot be read.
        """
        descriptor = self._descriptors.get(uri)
        if descriptor is None:
            raise UnknownResourceError(uri)

        project = self.config.project
        if descriptor.source is ResourceSource.README:
            text = await read_text(project.readme_path)
        elif descriptor.source is ResourceSource.CMAKE_CONFIG:
            text = await read_text(project.cmake_path)
        else:
            text = json.dumps(await collect_examples(project), indent=2)

        return ResourceContent(uri=uri, mime_type=descriptor.mime_type, text=text)

    def __contains__(self, uri: str) -> bool:
        return uri in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)
