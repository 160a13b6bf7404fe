"""ULID-based identifiers.

Used for proxy session ids, which must be unique and sort by creation time.
"""

from ulid import ULID


def generate_id() -> str:
    """Return a new 26-character ULID string.

    Example:
        >>> len(generate_id())
        26
    """
    return str(ULID())
