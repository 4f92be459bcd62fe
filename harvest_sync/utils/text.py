from __future__ import annotations

import re
from functools import lru_cache

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SEPARATORS = re.compile(r"[\s\-]+")


@lru_cache(maxsize=512)
def snake_case(value: str) -> str:
    """
    Convert a relation name to snake_case (`timeEntry` -> `time_entry`).

    Already-snake names are returned unchanged.
    """

    text = _SEPARATORS.sub("_", value.strip())
    text = _CAMEL_BOUNDARY.sub("_", text)
    return re.sub(r"_+", "_", text).lower()
