"""Tests for deterministic strategy ranking."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from waypost.models.entities import ServerProfile
from waypost.models.enums import (
    Approach,
    Capability,
    EndpointKind,
    PlatformType,
    Recommendation,
)
from waypost.models.results import ProbeResult, RouteTestReport
from waypost.strategies.ranking import (
    CANDIDATES,
    ConfigFlavour,
    candidate_strategies,
    config_flavour,
    next_rank,
    rank_strategies,
)
from waypost.strategies.registry import StrategyRegistry


def _report(static_ok: bool, dynamic_ok: bool) -> RouteTestReport:
    if static_ok:
        recommendation = Recommendation.STATIC_FILE
    elif dynamic_ok:
        recommendation = Recommendation.DYNAMIC_ROUTE
    else:
        recommendation = Recommendation.MANUAL_INTERVENTION_REQUIRED
    return RouteTestReport(
        path="/llms.txt",
        static_file=ProbeResult(
            approach=Approach.STATIC_FILE, success=static_ok, test_path="/a"
        ),
        dynamic_route=ProbeResult(
            approach=Approach.DYNAMIC_ROUTE, success=dynamic_ok, test_path="/b"
        ),
        recommendation=recommendation,
    )


class TestConfigFlavour:
    """Tests for picking the config variant from the profile."""

    def test_apache_with_rewrite(self, apache_profile: ServerProfile) -> None:
        """Apache with a usable .htaccess gets rewrite rules."""
        assert config_flavour(apache_profile) is ConfigFlavour.REWRITE_RULE

    def test_apache_without_rewrite(self, apache_profile: ServerProfile) -> None:
        """Apache whose .htaccess is unusable gets bare strategies."""
        profile = apache_profile.model_copy(update={"config_rewrite_supported": Capability.NO})
        assert config_flavour(profile) is ConfigFlavour.NONE

    @pytest.mark.parametrize("platform", [PlatformType.NGINX, PlatformType.IIS])
    def test_suggestion_platforms(self, platform: PlatformType) -> None:
        """nginx and IIS get config suggestions."""
        assert config_flavour(ServerProfile(platform_type=platform)) is ConfigFlavour.SUGGESTION

    def test_unknown_platform(self) -> None:
        """An unidentified server is trusted with rewrite rules only once proven writable."""
        proven = ServerProfile(config_rewrite_supported=Capability.YES)
        unproven = ServerProfile(config_rewrite_supported=Capability.UNKNOWN)

        assert config_flavour(proven) is ConfigFlavour.REWRITE_RULE
        assert config_flavour(unproven) is ConfigFlavour.NONE


class TestRankStrategies:
    """Tests for rank_strategies."""

    def test_static_preferred_when_both_work(self, apache_profile: ServerProfile) -> None:
        """Rank 0 wins and the dynamic alternate is noted."""
        ranking = rank_strategies(EndpointKind.STATIC, apache_profile, _report(True, True))

        assert ranking.chosen == "static-with-fallback-rule"
        assert ranking.chosen_rank == 0
        assert ranking.approach is Approach.STATIC_FILE
        assert ranking.alternates_also_work

    def test_failed_approach_never_chosen(self, apache_profile: ServerProfile) -> None:
        """When static files are not served the dynamic candidate wins."""
        ranking = rank_strategies(EndpointKind.STATIC, apache_profile, _report(False, True))

        assert ranking.chosen == "dynamic-route-with-backup-rule"
        assert ranking.chosen_rank == 1
        assert not ranking.alternates_also_work

    def test_nothing_works(self, nginx_profile: ServerProfile) -> None:
        """No candidate is chosen, but the list is still reported."""
        ranking = rank_strategies(EndpointKind.STATIC, nginx_profile, _report(False, False))

        assert ranking.chosen is None
        assert ranking.chosen_rank is None
        assert ranking.candidates == CANDIDATES[EndpointKind.STATIC][ConfigFlavour.SUGGESTION]

    def test_shared_file(self, apache_profile: ServerProfile) -> None:
        """Shared files append a section first."""
        ranking = rank_strategies(EndpointKind.SHARED_FILE, apache_profile, _report(True, True))
        assert ranking.candidates == ("shared-file-append", "dynamic-route-only")
        assert ranking.chosen == "shared-file-append"

    def test_proxy_on_nginx(self, nginx_profile: ServerProfile) -> None:
        """Proxy endpoints only ever use the dynamic approach."""
        ranking = rank_strategies(EndpointKind.PROXY, nginx_profile, _report(False, True))
        assert ranking.chosen == "proxy-with-config-suggestion"
        assert ranking.candidates == ("proxy-with-config-suggestion", "proxy-basic")

    @given(
        kind=st.sampled_from(list(EndpointKind)),
        platform=st.sampled_from(list(PlatformType)),
        rewrite=st.sampled_from(list(Capability)),
        static_ok=st.booleans(),
        dynamic_ok=st.booleans(),
    )
    def test_deterministic(
        self,
        kind: EndpointKind,
        platform: PlatformType,
        rewrite: Capability,
        static_ok: bool,
        dynamic_ok: bool,
    ) -> None:
        """Same inputs give the same ranking, and the choice always round-tripped."""
        profile = ServerProfile(platform_type=platform, config_rewrite_supported=rewrite)
        report = _report(static_ok, dynamic_ok)

        first = rank_strategies(kind, profile, report)
        second = rank_strategies(kind, profile, report)

        assert first == second
        if first.chosen is not None:
            assert first.approach is not None
            assert report.works(first.approach)
            assert first.candidates[first.chosen_rank] == first.chosen
            earlier = first.candidates[: first.chosen_rank]
            registry = StrategyRegistry()
            assert not any(report.works(registry.get(n).approach) for n in earlier)


class TestCandidates:
    """Tests for the candidate table."""

    def test_every_candidate_is_registered(self) -> None:
        """No candidate list names an unknown strategy."""
        registry = StrategyRegistry()
        for flavours in CANDIDATES.values():
            for names in flavours.values():
                assert all(name in registry for name in names)

    def test_candidate_strategies_follows_profile(
        self, apache_profile: ServerProfile, nginx_profile: ServerProfile
    ) -> None:
        """The profile picks the flavour, never the approach order."""
        assert candidate_strategies(EndpointKind.STATIC, apache_profile)[0] == (
            "static-with-fallback-rule"
        )
        assert candidate_strategies(EndpointKind.STATIC, nginx_profile)[0] == (
            "static-with-config-suggestion"
        )


class TestNextRank:
    """Tests for switch rank arithmetic."""

    @pytest.mark.parametrize(
        ("current", "count", "expected"),
        [(None, 4, 0), (0, 4, 1), (2, 4, 3), (3, 4, 0), (0, 1, 0)],
    )
    def test_wraps(self, current: int | None, count: int, expected: int) -> None:
        """The rank after the last wraps back to the first."""
        assert next_rank(current, count) == expected

    def test_empty_candidates(self) -> None:
        """There is no next rank without candidates."""
        with pytest.raises(ValueError, match="no candidate strategies"):
            next_rank(0, 0)
