"""Base62 encoding for short codes.

Alphabet significance order is digits, lowercase, uppercase, so ``encode(61)``
is ``"Z"`` and ``encode(62)`` is ``"10"``.

Example:
    >>> encode(12345)
    '3d7'
    >>> decode("3d7")
    12345
"""

from shortlink.exceptions import InvalidEncodingError

__all__ = ["BASE62_ALPHABET", "encode", "decode", "is_valid_code"]

BASE62_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
BASE = len(BASE62_ALPHABET)

_INDEX = {char: position for position, char in enumerate(BASE62_ALPHABET)}


def encode(number: int) -> str:
    """Encode a non-negative integer, most significant digit first.

    Raises:
        InvalidEncodingError: If ``number`` is negative.
    """
    if number < 0:
        raise InvalidEncodingError("Number must be non-negative")

    if number == 0:
        return BASE62_ALPHABET[0]

    result = []
    while number > 0:
        number, remainder = divmod(number, BASE)
        result.append(BASE62_ALPHABET[remainder])

    return "".join(result[::-1])


def decode(value: str) -> int:
    """Decode a Base62 string back to its integer.

    Raises:
        InvalidEncodingError: If ``value`` is empty or holds a character
            outside the alphabet.
    """
    if not value:
        raise InvalidEncodingError("Cannot decode an empty string")

    number = 0
    for char in value:
        index = _INDEX.get(char)
        if index is None:
            raise InvalidEncodingError(f"Invalid Base62 character: {char!r}")
        number = number * BASE + index
    return number


def is_valid_code(value: str) -> bool:
    return bool(value) and all(char in _INDEX for char in value)
