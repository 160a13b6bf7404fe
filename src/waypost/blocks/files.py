"""Filesystem blocks and the file-editing primitives they share.

Writes are atomic (temporary sibling file, then ``os.replace``) and every
read-modify-write of a file happens under a per-file lock, so two endpoints
appending to the same shared file cannot lose each other's section.

Sections are delimited by marker lines::

    # BEGIN waypost /robots.txt
    ...
    # END waypost /robots.txt

Files are edited as UTF-8 with ``surrogateescape``, so foreign bytes outside
the section (a Latin-1 comment in ``.htaccess``) are written back as found.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from waypost.blocks.base import BaseBlock, BlockContext
from waypost.models.constants import BEGIN_MARKER_TEMPLATE, END_MARKER_TEMPLATE, MARKER_PREFIX
from waypost.models.enums import BlockAction, BlockId
from waypost.models.results import BlockResult
from waypost.utils.paths import create_parents, prune_empty_dirs, resolve_public_path

_file_locks: dict[str, threading.Lock] = {}
_file_locks_guard = threading.Lock()


@contextmanager
def file_lock(path: Path) -> Iterator[None]:
    """Serialise read-modify-write cycles on one file within this process."""
    key = os.path.abspath(path)
    with _file_locks_guard:
        lock = _file_locks.setdefault(key, threading.Lock())
    with lock:
        yield


def atomic_write(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` in one rename, keeping its permissions."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        if path.is_file():
            shutil.copymode(path, tmp_path)
        else:
            tmp_path.chmod(0o644)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _write_new(path: Path, data: bytes, created: list[Path]) -> None:
    # A failed block is never cleaned up, so it removes its own directories.
    try:
        atomic_write(path, data)
    except OSError:
        prune_empty_dirs(created)
        raise


def read_optional(path: Path) -> bytes | None:
    """Bytes of ``path``, or None when it does not exist."""
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def _decode(data: bytes) -> str:
    # Bytes outside UTF-8 survive a decode/encode cycle unchanged.
    return data.decode("utf-8", errors="surrogateescape")


def _encode(text: str) -> bytes:
    return text.encode("utf-8", errors="surrogateescape")


def markers_for(path: str) -> tuple[str, str]:
    """Begin and end marker lines for an endpoint path."""
    return (
        BEGIN_MARKER_TEMPLATE.format(prefix=MARKER_PREFIX, path=path),
        END_MARKER_TEMPLATE.format(prefix=MARKER_PREFIX, path=path),
    )


def _find_line(lines: list[str], marker: str, start: int = 0) -> int:
    for index in range(start, len(lines)):
        if lines[index].rstrip("\r\n") == marker:
            return index
    return -1


def has_section(text: str, begin: str) -> bool:
    return _find_line(text.splitlines(keepends=True), begin) != -1


def insert_section(text: str, begin: str, end: str, body: str) -> str | None:
    """Append a marked section to ``text``; None if the begin marker exists.

    Example:
        >>> insert_section("User-agent: *\\n", "# BEGIN x", "# END x", "Allow: /")
        'User-agent: *\\n\\n# BEGIN x\\nAllow: /\\n# END x\\n'
    """
    if has_section(text, begin):
        return None
    body = body.rstrip("\n")
    section = f"{begin}\n{body}\n{end}\n"
    if not text:
        return section
    separator = "" if text.endswith("\n") else "\n"
    return f"{text}{separator}\n{section}"


def remove_section(text: str, begin: str, end: str) -> str | None:
    """Remove a marked section (and the blank line before it); None if absent."""
    lines = text.splitlines(keepends=True)
    start = _find_line(lines, begin)
    if start == -1:
        return None
    stop = _find_line(lines, end, start + 1)
    if stop == -1:
        stop = len(lines) - 1
    if start > 0 and not lines[start - 1].strip():
        start -= 1
    return "".join(lines[:start] + lines[stop + 1 :])


def apply_section(
    block_id: BlockId, target: Path, begin: str, end: str, body: str, ctx: BlockContext
) -> BlockResult:
    """Idempotently add a marked section to ``target``, journaling the change."""
    with file_lock(target):
        original = read_optional(target)
        text = _decode(original) if original is not None else ""
        updated = insert_section(text, begin, end, body)
        if updated is None:
            ctx.journal[block_id] = {"skipped": True}
            return BlockResult.ok(block_id, BlockAction.SKIPPED, (str(target),), marker=begin)
        created = create_parents(target)
        written = _encode(updated)
        _write_new(target, written, created)
    ctx.journal[block_id] = {
        "target": target,
        "original": original,
        "written": written,
        "created_dirs": created,
    }
    return BlockResult.ok(
        block_id,
        BlockAction.APPLIED,
        (str(target),),
        marker=begin,
        created_file=original is None,
    )


def revert_section(
    block_id: BlockId, target: Path, begin: str, end: str, ctx: BlockContext
) -> BlockResult:
    """Undo ``apply_section``: exact restore when possible, else marker removal."""
    entry = ctx.journal.pop(block_id, None)
    if entry is not None and entry.get("skipped"):
        return BlockResult.ok(block_id, BlockAction.NOOP, (str(target),))

    with file_lock(target):
        current = read_optional(target)
        if entry is not None and current == entry["written"]:
            original = entry["original"]
            if original is None:
                target.unlink()
                prune_empty_dirs(entry["created_dirs"])
            else:
                atomic_write(target, original)
            return BlockResult.ok(block_id, BlockAction.REMOVED, (str(target),), restored=True)

        if current is None:
            return BlockResult.ok(block_id, BlockAction.NOOP, (str(target),))
        updated = remove_section(_decode(current), begin, end)
        if updated is None:
            return BlockResult.ok(block_id, BlockAction.NOOP, (str(target),))
        atomic_write(target, _encode(updated))
    return BlockResult.ok(block_id, BlockAction.REMOVED, (str(target),), restored=False)


class WriteStaticFileBlock(BaseBlock):
    """Write the endpoint content as a physical file under the document root."""

    block_id = BlockId.WRITE_STATIC_FILE

    def _execute(self, path: str, content: bytes, ctx: BlockContext) -> BlockResult:
        target = resolve_public_path(ctx.settings.document_root, path)
        with file_lock(target):
            original = read_optional(target)
            if original == content:
                ctx.journal[self.block_id] = {"skipped": True}
                return BlockResult.ok(self.block_id, BlockAction.SKIPPED, (str(target),))
            created = create_parents(target)
            _write_new(target, content, created)
        ctx.journal[self.block_id] = {"original": original, "created_dirs": created}
        return BlockResult.ok(
            self.block_id,
            BlockAction.APPLIED,
            (str(target),),
            created_dirs=[str(d) for d in created],
            replaced=original is not None,
        )

    def _cleanup(self, path: str, ctx: BlockContext) -> BlockResult:
        target = resolve_public_path(ctx.settings.document_root, path)
        entry = ctx.journal.pop(self.block_id, None)
        if entry is not None and entry.get("skipped"):
            return BlockResult.ok(self.block_id, BlockAction.NOOP, (str(target),))

        with file_lock(target):
            if entry is not None and entry["original"] is not None:
                atomic_write(target, entry["original"])
                return BlockResult.ok(
                    self.block_id, BlockAction.REMOVED, (str(target),), restored=True
                )
            if not target.exists():
                return BlockResult.ok(self.block_id, BlockAction.NOOP, (str(target),))
            target.unlink()

        if entry is not None:
            directories = entry["created_dirs"]
        else:
            root = ctx.settings.document_root.resolve()
            directories = [p for p in target.parents if root in p.parents]
        removed = prune_empty_dirs(directories)
        return BlockResult.ok(
            self.block_id,
            BlockAction.REMOVED,
            (str(target),),
            removed_dirs=[str(d) for d in removed],
        )


class AppendToSharedFileBlock(BaseBlock):
    """Add the endpoint content as a marked section of a shared file."""

    block_id = BlockId.APPEND_TO_SHARED_FILE

    def _execute(self, path: str, content: bytes, ctx: BlockContext) -> BlockResult:
        target = resolve_public_path(ctx.settings.document_root, path)
        begin, end = markers_for(path)
        return apply_section(
            self.block_id, target, begin, end, _decode(content), ctx
        )

    def _cleanup(self, path: str, ctx: BlockContext) -> BlockResult:
        target = resolve_public_path(ctx.settings.document_root, path)
        begin, end = markers_for(path)
        return revert_section(self.block_id, target, begin, end, ctx)
