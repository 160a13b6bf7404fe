"""Route-binding blocks: dynamic content routes and proxy routes."""

from __future__ import annotations

from abc import abstractmethod

from waypost.blocks.base import BaseBlock, BlockContext
from waypost.dispatch.dispatcher import ContentRouteHandler, RouteBinding, RouteDispatcher
from waypost.dispatch.proxy import ProxyHandler
from waypost.errors import BlockExecutionError
from waypost.models.enums import BlockAction, BlockId
from waypost.models.results import BlockResult


def _route_ref(path: str) -> str:
    return f"route:{path}"


def _is_owned(binding: RouteBinding | None, path: str) -> bool:
    return binding is not None and not binding.transient and binding.owner == path


class _RouteBlock(BaseBlock):
    @abstractmethod
    def _same_handler(self, existing: object, handler: object) -> bool:
        """True when ``existing`` already serves what ``handler`` would."""

    def _bind(self, path: str, handler: object, ctx: BlockContext) -> BlockResult:
        dispatcher: RouteDispatcher = ctx.dispatcher
        existing = dispatcher.binding(path)
        if _is_owned(existing, path) and self._same_handler(existing.handler, handler):
            ctx.journal[self.block_id] = {"skipped": True}
            return BlockResult.ok(self.block_id, BlockAction.SKIPPED, (_route_ref(path),))
        previous = dispatcher.bind(path, handler, owner=path)  # type: ignore[arg-type]
        ctx.journal[self.block_id] = {"previous": previous}
        return BlockResult.ok(
            self.block_id,
            BlockAction.APPLIED,
            (_route_ref(path),),
            replaced=previous is not None,
        )

    def _cleanup(self, path: str, ctx: BlockContext) -> BlockResult:
        entry = ctx.journal.pop(self.block_id, None)
        if entry is not None:
            if entry.get("skipped"):
                return BlockResult.ok(self.block_id, BlockAction.NOOP, (_route_ref(path),))
            ctx.dispatcher.restore(path, entry["previous"])
            return BlockResult.ok(self.block_id, BlockAction.REMOVED, (_route_ref(path),))
        if ctx.dispatcher.unbind(path) is None:
            return BlockResult.ok(self.block_id, BlockAction.NOOP, (_route_ref(path),))
        return BlockResult.ok(self.block_id, BlockAction.REMOVED, (_route_ref(path),))


class RegisterDynamicRouteBlock(_RouteBlock):
    """Bind the endpoint path to its content generator in the dispatcher."""

    block_id = BlockId.REGISTER_DYNAMIC_ROUTE

    def _same_handler(self, existing: object, handler: object) -> bool:
        return (
            isinstance(existing, ContentRouteHandler)
            and isinstance(handler, ContentRouteHandler)
            and existing.generator is handler.generator
            and existing.methods == handler.methods
        )

    def _execute(self, path: str, content: bytes, ctx: BlockContext) -> BlockResult:
        endpoint = ctx.endpoint
        handler = ContentRouteHandler(
            endpoint.content_generator,
            content_type=endpoint.effective_content_type,
            cache_control=endpoint.cache_control,
            cors=endpoint.cors,
            methods=endpoint.supported_methods,
        )
        return self._bind(path, handler, ctx)


class RegisterProxyRouteBlock(_RouteBlock):
    """Bind the endpoint path to a ProxyHandler forwarding to ``proxy_target``."""

    block_id = BlockId.REGISTER_PROXY_ROUTE

    def _same_handler(self, existing: object, handler: object) -> bool:
        return (
            isinstance(existing, ProxyHandler)
            and isinstance(handler, ProxyHandler)
            and existing.target == handler.target
            and existing.info_generator is handler.info_generator
        )

    def _execute(self, path: str, content: bytes, ctx: BlockContext) -> BlockResult:
        endpoint = ctx.endpoint
        if not endpoint.proxy_target:
            raise BlockExecutionError(self.block_id.value, "endpoint has no proxy_target")
        if ctx.client is None:
            raise BlockExecutionError(self.block_id.value, "no HTTP client available")
        handler = ProxyHandler(
            target=endpoint.proxy_target,
            client=ctx.client,
            timeout=ctx.settings.proxy_timeout,
            site_url=ctx.settings.site_url,
            info_generator=endpoint.content_generator,
            verify=ctx.settings.should_verify_tls(endpoint.proxy_target),
        )
        return self._bind(path, handler, ctx)
