"""Strategy catalog: named, ordered compositions of building blocks.

The catalog is static and resolved once. Which strategies an endpoint may use,
and in what order, is decided by ``waypost.strategies.ranking``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from waypost.errors import UnknownStrategyError
from waypost.models.entities import Strategy
from waypost.models.enums import Approach, BlockId

DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    Strategy(
        name="static-with-fallback-rule",
        blocks=(BlockId.WRITE_STATIC_FILE, BlockId.ADD_REWRITE_RULE),
        approach=Approach.STATIC_FILE,
        applicability_hint="Apache or LiteSpeed with a writable rewrite config",
        display_name="Static file with rewrite rule",
    ),
    Strategy(
        name="static-with-config-suggestion",
        blocks=(BlockId.WRITE_STATIC_FILE, BlockId.SUGGEST_ALTERNATE_CONFIG),
        approach=Approach.STATIC_FILE,
        applicability_hint="nginx or IIS, where per-directory config is ignored",
        display_name="Static file with server config suggestion",
    ),
    Strategy(
        name="static-file-only",
        blocks=(BlockId.WRITE_STATIC_FILE,),
        approach=Approach.STATIC_FILE,
        applicability_hint="Any host that serves files from the document root",
        display_name="Static file",
    ),
    Strategy(
        name="dynamic-route-only",
        blocks=(BlockId.REGISTER_DYNAMIC_ROUTE,),
        approach=Approach.DYNAMIC_ROUTE,
        applicability_hint="Read-only document root with requests reaching the application",
        display_name="Dynamic route",
    ),
    Strategy(
        name="dynamic-route-with-backup-rule",
        blocks=(BlockId.REGISTER_DYNAMIC_ROUTE, BlockId.ADD_REWRITE_RULE),
        approach=Approach.DYNAMIC_ROUTE,
        applicability_hint="Apache or LiteSpeed where the static file is not served",
        display_name="Dynamic route with rewrite rule",
    ),
    Strategy(
        name="dynamic-route-with-config-suggestion",
        blocks=(BlockId.REGISTER_DYNAMIC_ROUTE, BlockId.SUGGEST_ALTERNATE_CONFIG),
        approach=Approach.DYNAMIC_ROUTE,
        applicability_hint="nginx or IIS where the static file is not served",
        display_name="Dynamic route with server config suggestion",
    ),
    Strategy(
        name="shared-file-append",
        blocks=(BlockId.APPEND_TO_SHARED_FILE,),
        approach=Approach.STATIC_FILE,
        applicability_hint="A section inside a file other tools also edit (robots.txt)",
        display_name="Section in shared file",
    ),
    Strategy(
        name="proxy-basic",
        blocks=(BlockId.REGISTER_PROXY_ROUTE,),
        approach=Approach.DYNAMIC_ROUTE,
        applicability_hint="API endpoint forwarding to an upstream service",
        display_name="Proxy route",
    ),
    Strategy(
        name="proxy-with-backup-rule",
        blocks=(BlockId.REGISTER_PROXY_ROUTE, BlockId.ADD_REWRITE_RULE),
        approach=Approach.DYNAMIC_ROUTE,
        applicability_hint="Proxy endpoint on Apache or LiteSpeed",
        display_name="Proxy route with rewrite rule",
    ),
    Strategy(
        name="proxy-with-config-suggestion",
        blocks=(BlockId.REGISTER_PROXY_ROUTE, BlockId.SUGGEST_ALTERNATE_CONFIG),
        approach=Approach.DYNAMIC_ROUTE,
        applicability_hint="Proxy endpoint on nginx or IIS",
        display_name="Proxy route with server config suggestion",
    ),
)


class StrategyRegistry:
    """Lookup table of strategies by name.

    Example:
        >>> registry = StrategyRegistry()
        >>> registry.get("static-file-only").blocks
        (<BlockId.WRITE_STATIC_FILE: 'write-static-file'>,)
        >>> "no-such-strategy" in registry
        False
    """

    def __init__(self, strategies: Iterable[Strategy] = DEFAULT_STRATEGIES) -> None:
        self._strategies: dict[str, Strategy] = {}
        for strategy in strategies:
            if strategy.name in self._strategies:
                raise ValueError(f"duplicate strategy name: {strategy.name}")
            self._strategies[strategy.name] = strategy

    def get(self, name: str) -> Strategy:
        """Return the strategy called ``name``.

        Raises:
            UnknownStrategyError: If no strategy has that name.
        """
        try:
            return self._strategies[name]
        except KeyError:
            raise UnknownStrategyError(name, available=self.names()) from None

    def names(self) -> list[str]:
        return list(self._strategies)

    def __contains__(self, name: object) -> bool:
        return name in self._strategies

    def __iter__(self) -> Iterator[Strategy]:
        return iter(self._strategies.values())

    def __len__(self) -> int:
        return len(self._strategies)

    def display_name(self, name: str) -> str:
        """Human label for ``name``; names outside the catalog are prettified.

        Example:
            >>> StrategyRegistry().display_name("manual_intervention_required")
            'Manual intervention required'
        """
        strategy = self._strategies.get(name)
        if strategy is not None and strategy.display_name:
            return strategy.display_name
        return name.replace("_", " ").replace("-", " ").capitalize()
