"""Best-effort unique identifiers for events and sessions.

Identifiers combine the creation timestamp with a short random base-36
suffix.  They are unique enough for de-duplication on the receiving side
but are not cryptographic.
"""

from __future__ import annotations

import random
import string
from typing import Final

_ALPHABET: Final[str] = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH: Final[int] = 9


def _suffix() -> str:
    return "".join(random.choices(_ALPHABET, k=_SUFFIX_LENGTH))


def new_event_id(ts_ms: int) -> str:
    """Return an event id such as ``"1718445600000_k3j9x0a2b"``."""
    return f"{ts_ms}_{_suffix()}"


def new_session_id(ts_ms: int) -> str:
    """Return a session id such as ``"session_1718445600000_k3j9x0a2b"``."""
    return f"session_{ts_ms}_{_suffix()}"
