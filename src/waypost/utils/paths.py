"""Mapping public URL paths onto the document root."""

from __future__ import annotations

from pathlib import Path

from waypost.errors import PathOutsideRootError


def resolve_public_path(document_root: Path, public_path: str) -> Path:
    """Resolve ``public_path`` under ``document_root``.

    Raises:
        PathOutsideRootError: If the result escapes the document root.

    Example:
        >>> resolve_public_path(Path("/srv/www"), "/.well-known/ai-plugin.json")
        PosixPath('/srv/www/.well-known/ai-plugin.json')
    """
    root = document_root.resolve()
    target = (root / public_path.lstrip("/")).resolve()
    if target == root or root not in target.parents:
        raise PathOutsideRootError(public_path, str(root))
    return target


def create_parents(target: Path) -> list[Path]:
    """Create missing parent directories of ``target``.

    Returns:
        The directories actually created, outermost first.

    Raises:
        OSError: If a directory cannot be created; the ones created before
            it are removed again.
    """
    missing: list[Path] = []
    parent = target.parent
    while not parent.exists():
        missing.append(parent)
        parent = parent.parent
    created: list[Path] = []
    try:
        for directory in reversed(missing):
            directory.mkdir()
            created.append(directory)
    except OSError:
        prune_empty_dirs(created)
        raise
    return created


def prune_empty_dirs(directories: list[Path]) -> list[Path]:
    """Remove the given directories, innermost first, while they are empty.

    Returns:
        The directories removed.
    """
    removed: list[Path] = []
    for directory in sorted(directories, key=lambda d: len(d.parts), reverse=True):
        try:
            directory.rmdir()
        except FileNotFoundError:
            continue
        except OSError:
            # Not empty: something else lives there now.
            break
        removed.append(directory)
    return removed
