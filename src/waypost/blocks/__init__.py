"""Building blocks: reversible deployment steps composed into strategies.

Example:
    >>> from waypost.blocks import BLOCK_REGISTRY
    >>> from waypost.models.enums import BlockId
    >>> BLOCK_REGISTRY[BlockId.WRITE_STATIC_FILE].block_id
    <BlockId.WRITE_STATIC_FILE: 'write-static-file'>
"""

from waypost.blocks.base import BaseBlock, BlockContext, BuildingBlock
from waypost.blocks.files import (
    AppendToSharedFileBlock,
    WriteStaticFileBlock,
    atomic_write,
    file_lock,
    insert_section,
    markers_for,
    remove_section,
)
from waypost.blocks.registry import BLOCK_REGISTRY
from waypost.blocks.rewrite import (
    AddRewriteRuleBlock,
    SuggestAlternateConfigBlock,
    render_apache_fragment,
    render_iis_suggestion,
    render_nginx_suggestion,
)
from waypost.blocks.routes import RegisterDynamicRouteBlock, RegisterProxyRouteBlock

__all__ = [
    "BLOCK_REGISTRY",
    "AddRewriteRuleBlock",
    "AppendToSharedFileBlock",
    "BaseBlock",
    "BlockContext",
    "BuildingBlock",
    "RegisterDynamicRouteBlock",
    "RegisterProxyRouteBlock",
    "SuggestAlternateConfigBlock",
    "WriteStaticFileBlock",
    "atomic_write",
    "file_lock",
    "insert_section",
    "markers_for",
    "remove_section",
    "render_apache_fragment",
    "render_iis_suggestion",
    "render_nginx_suggestion",
]
