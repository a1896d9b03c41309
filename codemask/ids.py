"""Random identifiers for projects, keys and chunks."""
from __future__ import annotations

import secrets
import string

# URL-safe alphabet, same symbols nanoid uses
ALPHABET = string.ascii_letters + string.digits + "_-"

PROJECT_ID_SIZE = 10
PROJECT_KEY_SIZE = 20
CHUNK_ID_SIZE = 8
CHUNK_ID_PREFIX = "chunk_"


def random_token(size: int) -> str:
    """Return `size` characters drawn from ALPHABET with a CSPRNG."""
    if size <= 0:
        raise ValueError(f"Token size must be positive, got {size}")
    return "".join(secrets.choice(ALPHABET) for _ in range(size))


def new_project_id() -> str:
    return random_token(PROJECT_ID_SIZE)


def new_project_key() -> str:
    return random_token(PROJECT_KEY_SIZE)


def new_chunk_id() -> str:
    """
    Chunk ids look like ``chunk_AbC9_x-Q``.

    Uniqueness within a project is probabilistic (64^8 space), not checked.
    """
    return CHUNK_ID_PREFIX + random_token(CHUNK_ID_SIZE)
