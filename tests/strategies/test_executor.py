"""Tests for the Strategy Executor."""

from pathlib import Path

import pytest

from waypost.blocks.base import BaseBlock, BlockContext, BuildingBlock
from waypost.blocks.registry import BLOCK_REGISTRY
from waypost.dispatch.dispatcher import RouteDispatcher
from waypost.errors import UnknownStrategyError
from waypost.models.entities import Endpoint, Strategy
from waypost.models.enums import Approach, BlockAction, BlockId, ErrorKind
from waypost.models.results import BlockResult
from waypost.observability import get_metrics
from waypost.strategies.executor import StrategyExecutor
from waypost.strategies.registry import StrategyRegistry
from waypost.testing.fixtures import EndpointFactory


class _BrokenCleanupRoute(BaseBlock):
    """Dynamic-route stand-in whose cleanup always fails."""

    block_id = BlockId.REGISTER_DYNAMIC_ROUTE

    def _execute(self, path: str, content: bytes, ctx: BlockContext) -> BlockResult:
        return BlockResult.ok(self.block_id, BlockAction.APPLIED)

    def _cleanup(self, path: str, ctx: BlockContext) -> BlockResult:
        raise RuntimeError("dispatcher gone")


class _RefusingRoute(BaseBlock):
    """Dynamic-route stand-in that cannot bind."""

    block_id = BlockId.REGISTER_DYNAMIC_ROUTE

    def _execute(self, path: str, content: bytes, ctx: BlockContext) -> BlockResult:
        raise RuntimeError("dispatcher is read-only")

    def _cleanup(self, path: str, ctx: BlockContext) -> BlockResult:
        return BlockResult.ok(self.block_id, BlockAction.NOOP)


class _Recording:
    """Delegates to a block and records each call in a shared log."""

    def __init__(self, inner: BuildingBlock, calls: list[tuple[str, BlockId]]) -> None:
        self.inner = inner
        self.block_id = inner.block_id
        self.calls = calls

    def execute(self, path: str, content: bytes, ctx: BlockContext) -> BlockResult:
        self.calls.append(("execute", self.block_id))
        return self.inner.execute(path, content, ctx)

    def cleanup(self, path: str, ctx: BlockContext) -> BlockResult:
        self.calls.append(("cleanup", self.block_id))
        return self.inner.cleanup(path, ctx)


def _tree(root: Path) -> dict[str, bytes | None]:
    return {
        str(p.relative_to(root)): p.read_bytes() if p.is_file() else None
        for p in sorted(root.rglob("*"))
    }


class TestRun:
    """Tests for StrategyExecutor.run."""

    def test_all_blocks_succeed(
        self, make_endpoint: EndpointFactory, block_context, document_root: Path
    ) -> None:
        """A successful run executes every block in order."""
        endpoint = make_endpoint("/llms.txt", b"# Site\n")
        ctx = block_context(endpoint)

        result = StrategyExecutor().run("static-with-fallback-rule", endpoint, ctx)

        assert result.success
        assert result.blocks_executed == (BlockId.WRITE_STATIC_FILE, BlockId.ADD_REWRITE_RULE)
        assert result.blocks_failed == ()
        assert result.cleanup_summary is None
        assert ctx.approach is Approach.STATIC_FILE
        assert (document_root / "llms.txt").read_bytes() == b"# Site\n"
        assert "# BEGIN waypost /llms.txt" in (document_root / ".htaccess").read_text()

    def test_failed_block_rolls_back_earlier_blocks(
        self, make_endpoint: EndpointFactory, block_context, document_root: Path
    ) -> None:
        """A rewrite config that cannot be written undoes the static file."""
        (document_root / ".htaccess").mkdir()
        endpoint = make_endpoint("/llms.txt")

        result = StrategyExecutor().run(
            "static-with-fallback-rule", endpoint, block_context(endpoint)
        )

        assert not result.success
        assert result.blocks_executed == (BlockId.WRITE_STATIC_FILE,)
        assert result.blocks_failed == (BlockId.ADD_REWRITE_RULE,)
        assert result.failed_block is BlockId.ADD_REWRITE_RULE
        assert result.error is not None
        assert result.error.kind is ErrorKind.BLOCK_EXECUTION
        assert result.error.message.startswith("add-rewrite-rule failed: ")
        assert result.cleanup_summary is not None
        assert result.cleanup_summary.blocks_cleaned == (BlockId.WRITE_STATIC_FILE,)
        assert result.cleanup_summary.all_successful
        assert not (document_root / "llms.txt").exists()

    def test_rollback_restores_overwritten_file(
        self, make_endpoint: EndpointFactory, block_context, document_root: Path
    ) -> None:
        """A pre-existing file is put back byte for byte."""
        (document_root / "llms.txt").write_bytes(b"hand written\n")
        (document_root / ".htaccess").mkdir()
        endpoint = make_endpoint("/llms.txt", b"generated\n")

        StrategyExecutor().run("static-with-fallback-rule", endpoint, block_context(endpoint))

        assert (document_root / "llms.txt").read_bytes() == b"hand written\n"

    def test_dynamic_rollback_unbinds_route(
        self,
        make_endpoint: EndpointFactory,
        block_context,
        document_root: Path,
        dispatcher: RouteDispatcher,
    ) -> None:
        """A failing rewrite rule after a route bind leaves no route behind."""
        (document_root / ".htaccess").mkdir()
        endpoint = make_endpoint("/llms.txt")

        result = StrategyExecutor().run(
            "dynamic-route-with-backup-rule", endpoint, block_context(endpoint)
        )

        assert not result.success
        assert not dispatcher.handles("/llms.txt")

    def test_third_block_failure_restores_whole_tree(
        self,
        make_endpoint: EndpointFactory,
        block_context,
        document_root: Path,
        dispatcher: RouteDispatcher,
    ) -> None:
        """Two applied blocks are undone in reverse and the root matches its snapshot."""
        (document_root / ".htaccess").write_text("RewriteEngine On\n")
        (document_root / ".well-known").mkdir()
        (document_root / ".well-known" / "security.txt").write_text("Contact: ops@site.test\n")
        before = _tree(document_root)
        calls: list[tuple[str, BlockId]] = []
        blocks = {
            block_id: _Recording(BLOCK_REGISTRY[block_id], calls)
            for block_id in (BlockId.ADD_REWRITE_RULE, BlockId.WRITE_STATIC_FILE)
        }
        blocks[BlockId.REGISTER_DYNAMIC_ROUTE] = _Recording(_RefusingRoute(), calls)
        registry = StrategyRegistry(
            [
                Strategy(
                    name="rule-file-route",
                    blocks=(
                        BlockId.ADD_REWRITE_RULE,
                        BlockId.WRITE_STATIC_FILE,
                        BlockId.REGISTER_DYNAMIC_ROUTE,
                    ),
                    approach=Approach.STATIC_FILE,
                )
            ]
        )
        endpoint = make_endpoint("/.well-known/mcp/servers.json", b'{"servers": []}')

        result = StrategyExecutor(registry, blocks=blocks).run(
            "rule-file-route", endpoint, block_context(endpoint)
        )

        assert not result.success
        assert result.blocks_executed == (BlockId.ADD_REWRITE_RULE, BlockId.WRITE_STATIC_FILE)
        assert result.blocks_failed == (BlockId.REGISTER_DYNAMIC_ROUTE,)
        assert calls == [
            ("execute", BlockId.ADD_REWRITE_RULE),
            ("execute", BlockId.WRITE_STATIC_FILE),
            ("execute", BlockId.REGISTER_DYNAMIC_ROUTE),
            ("cleanup", BlockId.WRITE_STATIC_FILE),
            ("cleanup", BlockId.ADD_REWRITE_RULE),
        ]
        assert result.cleanup_summary is not None
        assert result.cleanup_summary.all_successful
        assert _tree(document_root) == before
        assert dispatcher.paths == frozenset()

    def test_cleanup_failure_is_recorded_not_raised(
        self, make_endpoint: EndpointFactory, block_context, document_root: Path
    ) -> None:
        """The original failure is reported; cleanup failures land in the summary."""
        (document_root / ".htaccess").mkdir()
        blocks = {**BLOCK_REGISTRY, BlockId.REGISTER_DYNAMIC_ROUTE: _BrokenCleanupRoute()}
        endpoint = make_endpoint("/llms.txt")

        result = StrategyExecutor(blocks=blocks).run(
            "dynamic-route-with-backup-rule", endpoint, block_context(endpoint)
        )

        summary = result.cleanup_summary
        assert result.error is not None
        assert result.error.message.startswith("add-rewrite-rule failed")
        assert summary is not None
        assert not summary.all_successful
        assert summary.blocks_cleaned == ()
        failure = summary.results[0].error
        assert failure is not None
        assert failure.kind is ErrorKind.CLEANUP
        assert "dispatcher gone" in failure.message

    def test_unknown_strategy_runs_nothing(
        self, make_endpoint: EndpointFactory, block_context, document_root: Path
    ) -> None:
        """Lookup happens before the first block."""
        endpoint = make_endpoint("/llms.txt")

        with pytest.raises(UnknownStrategyError) as exc_info:
            StrategyExecutor().run("static-everywhere", endpoint, block_context(endpoint))

        assert "static-file-only" in exc_info.value.details["available"]
        assert list(document_root.iterdir()) == []

    def test_content_generator_failure(self, block_context, document_root: Path) -> None:
        """A raising generator fails the run before any block."""

        def broken() -> tuple[bytes, str]:
            raise ValueError("no content yet")

        endpoint = Endpoint(path="/llms.txt", content_generator=broken)

        result = StrategyExecutor().run("static-file-only", endpoint, block_context(endpoint))

        assert not result.success
        assert result.error is not None
        assert result.error.kind is ErrorKind.CONTENT_GENERATOR
        assert "ValueError: no content yet" in result.error.message
        assert result.blocks_executed == ()
        assert list(document_root.iterdir()) == []

    def test_suggestions_collected(
        self, make_endpoint: EndpointFactory, block_context, nginx_profile
    ) -> None:
        """Config-suggestion strategies expose their snippets."""
        endpoint = make_endpoint("/llms.txt")

        result = StrategyExecutor().run(
            "static-with-config-suggestion",
            endpoint,
            block_context(endpoint, profile=nginx_profile),
        )

        assert result.success
        assert len(result.suggestions) == 1
        assert "location = /llms.txt" in result.suggestions[0]

    def test_metrics(
        self, make_endpoint: EndpointFactory, block_context, document_root: Path
    ) -> None:
        """Runs and rollbacks are counted per strategy."""
        (document_root / ".htaccess").mkdir()
        endpoint = make_endpoint("/llms.txt")
        executor = StrategyExecutor()

        executor.run("static-file-only", endpoint, block_context(endpoint))
        executor.run("static-with-fallback-rule", endpoint, block_context(endpoint))

        metrics = get_metrics()
        assert metrics.get_counter(
            "waypost_strategy_runs_total", {"strategy": "static-file-only", "outcome": "success"}
        ) == 1.0
        assert metrics.get_counter(
            "waypost_strategy_runs_total",
            {"strategy": "static-with-fallback-rule", "outcome": "rolled_back"},
        ) == 1.0
        assert metrics.get_counter(
            "waypost_rollbacks_total", {"strategy": "static-with-fallback-rule"}
        ) == 1.0


class TestRunSafe:
    """Tests for StrategyExecutor.run_safe."""

    def test_unknown_strategy_is_a_result(
        self, make_endpoint: EndpointFactory, block_context
    ) -> None:
        """The error comes back tagged instead of raised."""
        endpoint = make_endpoint("/llms.txt")

        result = StrategyExecutor().run_safe("nope", endpoint, block_context(endpoint))

        assert not result.success
        assert result.error is not None
        assert result.error.kind is ErrorKind.UNKNOWN_STRATEGY
        assert result.error.message == "Unknown strategy: nope"


class TestTeardown:
    """Tests for StrategyExecutor.teardown."""

    def test_removes_every_artifact(
        self,
        make_endpoint: EndpointFactory,
        block_context,
        document_root: Path,
    ) -> None:
        """Teardown in a fresh context removes the file and the fragment."""
        (document_root / ".htaccess").write_text("RewriteEngine On\n")
        endpoint = make_endpoint("/.well-known/ai-plugin.json", b"{}")
        executor = StrategyExecutor()
        executor.run("static-with-fallback-rule", endpoint, block_context(endpoint))

        summary = executor.teardown("static-with-fallback-rule", endpoint, block_context(endpoint))

        assert summary.all_successful
        assert summary.blocks_cleaned == (BlockId.ADD_REWRITE_RULE, BlockId.WRITE_STATIC_FILE)
        assert not (document_root / ".well-known").exists()
        assert "waypost" not in (document_root / ".htaccess").read_text()

    def test_unknown_strategy_raises(
        self, make_endpoint: EndpointFactory, block_context
    ) -> None:
        """Teardown of an unregistered name is refused."""
        endpoint = make_endpoint("/llms.txt")
        with pytest.raises(UnknownStrategyError):
            StrategyExecutor().teardown("nope", endpoint, block_context(endpoint))
