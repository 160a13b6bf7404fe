"""Strategy State Store: one persisted StrategyState per registered endpoint.

States live in the persistence port under ``waypost.strategy.<slug>`` where
the slug is a reversible escape of the endpoint path::

    >>> path_to_key("/.well-known/ai-plugin.json")
    'waypost.strategy.%2F%2Ewell%2Dknown%2Fai%2Dplugin%2Ejson'
    >>> key_to_path(path_to_key("/llms.txt"))
    '/llms.txt'
"""

from __future__ import annotations

from urllib.parse import quote, unquote

from pydantic import ValidationError

from waypost.models.constants import STATE_KEY_PREFIX
from waypost.models.entities import StrategyState
from waypost.observability import get_logger
from waypost.state.persistence import PersistencePort

logger = get_logger(__name__)

# quote() leaves these unreserved characters alone; escaping them keeps the
# slug free of the "." used by the key prefix.
_UNRESERVED_ESCAPES = {".": "%2E", "-": "%2D", "_": "%5F", "~": "%7E"}


def path_to_key(path: str) -> str:
    """Persistence key for an endpoint path."""
    slug = quote(path, safe="")
    for char, escaped in _UNRESERVED_ESCAPES.items():
        slug = slug.replace(char, escaped)
    return f"{STATE_KEY_PREFIX}{slug}"


def key_to_path(key: str) -> str:
    """Endpoint path for a persistence key produced by ``path_to_key``.

    Raises:
        ValueError: If ``key`` does not carry the strategy state prefix.
    """
    if not key.startswith(STATE_KEY_PREFIX):
        raise ValueError(f"not a strategy state key: {key!r}")
    return unquote(key[len(STATE_KEY_PREFIX) :])


class StrategyStateStore:
    """Typed access to StrategyState records in a PersistencePort."""

    def __init__(self, persistence: PersistencePort) -> None:
        self.persistence = persistence

    def save(self, state: StrategyState) -> None:
        self.persistence.set(path_to_key(state.endpoint_path), state.model_dump(mode="json"))

    def load(self, path: str) -> StrategyState | None:
        """Persisted state for ``path``; None when absent or unreadable."""
        raw = self.persistence.get(path_to_key(path))
        if raw is None:
            return None
        try:
            return StrategyState.model_validate(raw)
        except ValidationError as exc:
            logger.warning(
                "waypost.state.corrupt",
                path=path,
                errors=exc.error_count(),
            )
            return None

    def delete(self, path: str) -> bool:
        return self.persistence.delete(path_to_key(path))

    def paths(self) -> list[str]:
        return [key_to_path(key) for key in self.persistence.keys(STATE_KEY_PREFIX)]

    def list(self) -> list[StrategyState]:
        """Every readable persisted state, ordered by endpoint path."""
        states = [self.load(path) for path in self.paths()]
        return sorted(
            (state for state in states if state is not None),
            key=lambda state: state.endpoint_path,
        )


__all__ = ["StrategyStateStore", "key_to_path", "path_to_key"]
