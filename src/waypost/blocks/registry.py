"""Block id to implementation mapping, resolved once at import."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from waypost.blocks.base import BuildingBlock
from waypost.blocks.files import AppendToSharedFileBlock, WriteStaticFileBlock
from waypost.blocks.rewrite import AddRewriteRuleBlock, SuggestAlternateConfigBlock
from waypost.blocks.routes import RegisterDynamicRouteBlock, RegisterProxyRouteBlock
from waypost.models.enums import BlockId

BLOCK_REGISTRY: Mapping[BlockId, BuildingBlock] = MappingProxyType(
    {
        BlockId.WRITE_STATIC_FILE: WriteStaticFileBlock(),
        BlockId.ADD_REWRITE_RULE: AddRewriteRuleBlock(),
        BlockId.REGISTER_DYNAMIC_ROUTE: RegisterDynamicRouteBlock(),
        BlockId.APPEND_TO_SHARED_FILE: AppendToSharedFileBlock(),
        BlockId.SUGGEST_ALTERNATE_CONFIG: SuggestAlternateConfigBlock(),
        BlockId.REGISTER_PROXY_ROUTE: RegisterProxyRouteBlock(),
    }
)
