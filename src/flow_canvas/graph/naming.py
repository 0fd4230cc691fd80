"""Node ids and step names."""

from __future__ import annotations

import re
import secrets
import string
import time
from collections.abc import Iterable

_ALPHABET = string.ascii_lowercase + string.digits
_NON_SLUG = re.compile(r"[^a-z0-9]+")
MAX_SLUG_LENGTH = 48


def new_node_id() -> str:
    """Opaque, process-unique id: millisecond clock plus a random suffix."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"node_{int(time.time() * 1000)}_{suffix}"


def slugify(text: str | None) -> str:
    s = _NON_SLUG.sub("_", str(text or "").strip().lower())
    s = s.strip("_")[:MAX_SLUG_LENGTH]
    return s or "step"


def unique_step_name(base: str | None, existing_names: Iterable[str]) -> str:
    """``slugify(base)``, or the first free ``<slug>_N`` when taken.

    ``existing_names`` must be the names of the nodes present right now.
    """
    taken = set(existing_names)
    normalized = slugify(base)
    if normalized not in taken:
        return normalized
    i = 1
    while f"{normalized}_{i}" in taken:
        i += 1
    return f"{normalized}_{i}"
