"""
Identifier generation for transactions.

- new_id(): time-ordered internal id (48-bit millisecond clock + 80 random bits, hex).
- new_public_id(): short receipt number such as TRX-7KQ2M9XA. The alphabet
  leaves out 0/O, 1/I and L so ids survive being read aloud.
- new_code(): the same scheme with any prefix and length (PO-, HLD-).
"""
from __future__ import annotations

import secrets
import time
from typing import Callable, Optional

from ..constants import (
    PUBLIC_ID_ALPHABET,
    PUBLIC_ID_LENGTH,
    PUBLIC_ID_PREFIX_RETURN,
    PUBLIC_ID_PREFIX_SALE,
    TYPE_RETURN,
)

_MAX_ATTEMPTS = 50


def new_id() -> str:
    millis = int(time.time() * 1000) & ((1 << 48) - 1)
    return f"{millis:012x}{secrets.token_hex(10)}"


def _random_code(length: int = PUBLIC_ID_LENGTH) -> str:
    return "".join(secrets.choice(PUBLIC_ID_ALPHABET) for _ in range(length))


def new_code(
    prefix: str,
    length: int = PUBLIC_ID_LENGTH,
    exists: Optional[Callable[[str], bool]] = None,
) -> str:
    for _ in range(_MAX_ATTEMPTS):
        candidate = prefix + _random_code(length)
        if exists is None or not exists(candidate):
            return candidate
    raise RuntimeError("Could not allocate a unique public id.")


def new_public_id(
    transaction_type: str,
    exists: Optional[Callable[[str], bool]] = None,
) -> str:
    prefix = PUBLIC_ID_PREFIX_RETURN if transaction_type == TYPE_RETURN else PUBLIC_ID_PREFIX_SALE
    return new_code(prefix, PUBLIC_ID_LENGTH, exists)
