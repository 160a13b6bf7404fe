"""Tests for document-root path helpers."""

from pathlib import Path

import pytest

from waypost.errors import PathOutsideRootError
from waypost.utils.paths import create_parents, prune_empty_dirs, resolve_public_path


class TestResolvePublicPath:
    """Tests for resolve_public_path."""

    def test_nested_path(self, document_root: Path) -> None:
        """Well-known paths map below the root."""
        target = resolve_public_path(document_root, "/.well-known/mcp/servers.json")

        assert target == document_root.resolve() / ".well-known" / "mcp" / "servers.json"

    @pytest.mark.parametrize("public_path", ["/", "/../outside.txt", "/a/../../etc/passwd"])
    def test_escapes_rejected(self, document_root: Path, public_path: str) -> None:
        """The root itself and anything outside it are refused."""
        with pytest.raises(PathOutsideRootError):
            resolve_public_path(document_root, public_path)

    def test_symlink_escape_rejected(self, document_root: Path, tmp_path: Path) -> None:
        """A symlink pointing out of the root does not smuggle writes outside."""
        outside = tmp_path / "outside"
        outside.mkdir()
        (document_root / "link").symlink_to(outside)

        with pytest.raises(PathOutsideRootError):
            resolve_public_path(document_root, "/link/llms.txt")


class TestDirectories:
    """Tests for create_parents and prune_empty_dirs."""

    def test_create_reports_only_new_directories(self, document_root: Path) -> None:
        """Existing parents are not reported as created."""
        (document_root / ".well-known").mkdir()
        target = document_root / ".well-known" / "mcp" / "v1" / "servers.json"

        created = create_parents(target)

        assert created == [
            document_root / ".well-known" / "mcp",
            document_root / ".well-known" / "mcp" / "v1",
        ]
        assert target.parent.is_dir()

    def test_prune_stops_at_non_empty(self, document_root: Path) -> None:
        """Only empty directories are removed, innermost first."""
        created = create_parents(document_root / "a" / "b" / "c" / "file.txt")
        (document_root / "a" / "keep.txt").write_text("x")

        removed = prune_empty_dirs(created)

        assert removed == [document_root / "a" / "b" / "c", document_root / "a" / "b"]
        assert (document_root / "a").is_dir()

    def test_prune_tolerates_missing(self, document_root: Path) -> None:
        """Already-removed directories are skipped."""
        assert prune_empty_dirs([document_root / "gone"]) == []

    def test_create_removes_partial_directories(
        self, document_root: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A mkdir failure part way down leaves no new directories behind."""
        real_mkdir = Path.mkdir
        attempts: list[Path] = []

        def refuse_second(self: Path, *args: object, **kwargs: object) -> None:
            attempts.append(self)
            if len(attempts) == 2:
                raise PermissionError(13, "Permission denied", str(self))
            real_mkdir(self, *args, **kwargs)  # type: ignore[arg-type]

        monkeypatch.setattr(Path, "mkdir", refuse_second)

        with pytest.raises(PermissionError):
            create_parents(document_root / "a" / "b" / "c" / "file.txt")

        assert attempts == [document_root / "a", document_root / "a" / "b"]
        assert list(document_root.iterdir()) == []
