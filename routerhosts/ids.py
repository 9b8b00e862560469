"""ULID identifiers for host entries: parsing, normalising and generating."""

from __future__ import annotations

import secrets
import time

ULID_LENGTH = 26

_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_DECODE = {
    **{char: value for value, char in enumerate(_ALPHABET)},
    **{char.lower(): value for value, char in enumerate(_ALPHABET)},
}
_TIMESTAMP_BITS = 48
_RANDOM_BITS = 80


class InvalidIdError(ValueError):
    """The text is not a valid ULID."""


def _encode(value: int) -> str:
    chars = []
    for _ in range(ULID_LENGTH):
        chars.append(_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def parse_ulid(text: str) -> str:
    """Validate a ULID and return it in canonical upper-case form.

    Raises :class:`InvalidIdError` for a wrong length, a character outside
    the Crockford base32 alphabet, or a value that does not fit in 128 bits.
    """
    if len(text) != ULID_LENGTH:
        raise InvalidIdError("invalid length")
    value = 0
    for char in text:
        try:
            digit = _DECODE[char]
        except KeyError:
            raise InvalidIdError("invalid character") from None
        value = (value << 5) | digit
    if value >> 128:
        raise InvalidIdError("value overflows 128 bits")
    return _encode(value)


def new_ulid() -> str:
    """Generate a new ULID from the current time and 80 random bits."""
    timestamp = (time.time_ns() // 1_000_000) & ((1 << _TIMESTAMP_BITS) - 1)
    randomness = int.from_bytes(secrets.token_bytes(_RANDOM_BITS // 8), "big")
    return _encode((timestamp << _RANDOM_BITS) | randomness)