"""Base62 token codec and custom-token validation.

Generated tokens are the Base62 form of a monotonically increasing integer id,
most significant symbol first. Distinct ids always map to distinct tokens, so
collision freedom of generated tokens reduces to uniqueness of ids.

Alphabet Layout
===============
::
    index  0..9   -> '0'..'9'
    index 10..35  -> 'A'..'Z'
    index 36..61  -> 'a'..'z'

    custom tokens additionally accept '-' and '_'

Examples::

    >>> encode(1)
    '1'
    >>> encode(62)
    '10'
    >>> validate_custom_token("valid-token_1")
    True
"""

import string

__all__ = ["BASE62_ALPHABET", "CUSTOM_TOKEN_ALPHABET", "encode", "validate_custom_token"]

BASE62_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
CUSTOM_TOKEN_ALPHABET = frozenset(BASE62_ALPHABET + "-_")

_BASE = len(BASE62_ALPHABET)


def encode(number: int) -> str:
    """Encode a non-negative integer as a Base62 token.

    Args:
        number: Id to encode. Ids start at 1; 0 encodes to the empty string.

    Returns:
        str: Base62 token, most significant symbol first

    Raises:
        ValueError: If ``number`` is negative
    """
    if number < 0:
        raise ValueError("Number must be non-negative")

    result = []
    while number > 0:
        number, remainder = divmod(number, _BASE)
        result.append(BASE62_ALPHABET[remainder])

    return "".join(result[::-1])


def validate_custom_token(token: str) -> bool:
    # Empty means "no custom token requested"; callers must check that first.
    return bool(token) and all(char in CUSTOM_TOKEN_ALPHABET for char in token)
