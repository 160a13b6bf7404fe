"""Catalog of the well-known endpoints a site publishes.

Payloads are not defined here: callers supply the content generator (and,
for ``/ask``, the upstream URL) when turning a catalog entry into an Endpoint.

Example:
    >>> entry = KNOWN_ENDPOINTS["/llms.txt"]
    >>> entry.name
    'LLMS.txt Policy'
    >>> endpoint = entry.to_endpoint(lambda: (b"# Site", "text/plain"))
    >>> endpoint.display_name
    'LLMS.txt Policy'
"""

from __future__ import annotations

from types import MappingProxyType

from waypost.models.base import WaypostBaseModel
from waypost.models.entities import ContentGenerator, Endpoint
from waypost.models.enums import EndpointKind


class KnownEndpoint(WaypostBaseModel):
    """Catalog entry for a well-known endpoint.

    Attributes:
        key: Stable identifier
        path: Public path
        name: Human label
        description: What the endpoint is for
        kind: Endpoint family
    """

    key: str
    path: str
    name: str
    description: str
    kind: EndpointKind = EndpointKind.STATIC

    def to_endpoint(
        self, content_generator: ContentGenerator, proxy_target: str | None = None
    ) -> Endpoint:
        return Endpoint(
            path=self.path,
            content_generator=content_generator,
            kind=self.kind,
            proxy_target=proxy_target,
            display_name=self.name,
        )


_CATALOG = (
    KnownEndpoint(
        key="ai_plugin",
        path="/.well-known/ai-plugin.json",
        name="AI Plugin Discovery",
        description="Allows AI tools to discover the site assistant",
    ),
    KnownEndpoint(
        key="mcp_servers",
        path="/.well-known/mcp/servers.json",
        name="MCP Servers",
        description="Model Context Protocol server discovery",
    ),
    KnownEndpoint(
        key="llms_txt",
        path="/llms.txt",
        name="LLMS.txt Policy",
        description="AI/LLM usage policy and guidelines",
    ),
    KnownEndpoint(
        key="ask",
        path="/ask",
        name="Ask Endpoint",
        description="Interactive chat endpoint for AI and humans",
        kind=EndpointKind.PROXY,
    ),
    KnownEndpoint(
        key="robots_txt",
        path="/robots.txt",
        name="Robots.txt Enhancement",
        description="Enhanced robots.txt with AI directives",
        kind=EndpointKind.SHARED_FILE,
    ),
)

KNOWN_ENDPOINTS: MappingProxyType[str, KnownEndpoint] = MappingProxyType(
    {entry.path: entry for entry in _CATALOG}
)
"""Catalog entries keyed by public path, in display order."""


def display_name(path: str) -> str:
    """Catalog label for ``path``, or the path itself."""
    entry = KNOWN_ENDPOINTS.get(path)
    return entry.name if entry is not None else path


__all__ = ["KNOWN_ENDPOINTS", "KnownEndpoint", "display_name"]
