"""Deterministic strategy ranking.

Each endpoint kind has an ordered candidate list. The server profile only
picks which variant of each approach the list holds (rewrite rule, config
suggestion, or bare); it never reorders approaches. The chosen strategy is
the first candidate whose approach round-tripped in the route test, so an
approach that failed empirically is never chosen over one that worked, and
a candidate's rank is simply its position in the list.

For a static endpoint on a host with a usable rewrite config::

    0 static-with-fallback-rule
    1 dynamic-route-with-backup-rule
    2 static-file-only
    3 dynamic-route-only
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from waypost.models.entities import ServerProfile
from waypost.models.enums import Approach, Capability, EndpointKind, PlatformType
from waypost.models.results import RouteTestReport
from waypost.strategies.registry import StrategyRegistry


class ConfigFlavour(str, Enum):
    """How server configuration accompanies a deployment on this host."""

    REWRITE_RULE = "rewrite_rule"
    SUGGESTION = "suggestion"
    NONE = "none"


CANDIDATES: dict[EndpointKind, dict[ConfigFlavour, tuple[str, ...]]] = {
    EndpointKind.STATIC: {
        ConfigFlavour.REWRITE_RULE: (
            "static-with-fallback-rule",
            "dynamic-route-with-backup-rule",
            "static-file-only",
            "dynamic-route-only",
        ),
        ConfigFlavour.SUGGESTION: (
            "static-with-config-suggestion",
            "dynamic-route-with-config-suggestion",
            "static-file-only",
            "dynamic-route-only",
        ),
        ConfigFlavour.NONE: ("static-file-only", "dynamic-route-only"),
    },
    EndpointKind.SHARED_FILE: {
        flavour: ("shared-file-append", "dynamic-route-only") for flavour in ConfigFlavour
    },
    EndpointKind.PROXY: {
        ConfigFlavour.REWRITE_RULE: ("proxy-with-backup-rule", "proxy-basic"),
        ConfigFlavour.SUGGESTION: ("proxy-with-config-suggestion", "proxy-basic"),
        ConfigFlavour.NONE: ("proxy-basic",),
    },
}


def config_flavour(profile: ServerProfile) -> ConfigFlavour:
    """Pick the config flavour the profile supports.

    Example:
        >>> config_flavour(ServerProfile(platform_type=PlatformType.NGINX))
        <ConfigFlavour.SUGGESTION: 'suggestion'>
    """
    if (
        profile.config_rewrite_supported is Capability.YES
        and profile.platform_type.reads_directory_config()
    ):
        return ConfigFlavour.REWRITE_RULE
    if profile.platform_type in (PlatformType.NGINX, PlatformType.IIS):
        return ConfigFlavour.SUGGESTION
    return ConfigFlavour.NONE


def candidate_strategies(kind: EndpointKind, profile: ServerProfile) -> tuple[str, ...]:
    """Ordered strategy names for an endpoint kind on this host."""
    return CANDIDATES[kind][config_flavour(profile)]


@dataclass(frozen=True)
class StrategyRanking:
    """Result of ranking: the candidates and the one chosen, if any."""

    candidates: tuple[str, ...]
    chosen: str | None = None
    chosen_rank: int | None = None
    approach: Approach | None = None
    alternates_also_work: bool = False


def alternates_work(
    candidates: tuple[str, ...],
    approach: Approach,
    report: RouteTestReport,
    registry: StrategyRegistry,
) -> bool:
    """Whether a candidate of a different approach also round-tripped."""
    others = {registry.get(name).approach for name in candidates} - {approach}
    return any(report.works(other) for other in others)


def rank_strategies(
    kind: EndpointKind,
    profile: ServerProfile,
    report: RouteTestReport,
    registry: StrategyRegistry | None = None,
) -> StrategyRanking:
    """Choose the highest-ranked candidate whose approach round-tripped.

    Same inputs always give the same result.
    """
    registry = registry or StrategyRegistry()
    candidates = candidate_strategies(kind, profile)
    for rank, name in enumerate(candidates):
        approach = registry.get(name).approach
        if report.works(approach):
            return StrategyRanking(
                candidates=candidates,
                chosen=name,
                chosen_rank=rank,
                approach=approach,
                alternates_also_work=alternates_work(candidates, approach, report, registry),
            )
    return StrategyRanking(candidates=candidates)


def next_rank(current_rank: int | None, candidate_count: int) -> int:
    """Rank to try on a switch: the one after ``current_rank``, wrapping.

    Example:
        >>> next_rank(None, 4), next_rank(0, 4), next_rank(3, 4)
        (0, 1, 0)
    """
    if candidate_count <= 0:
        raise ValueError("no candidate strategies")
    if current_rank is None:
        return 0
    return (current_rank + 1) % candidate_count
