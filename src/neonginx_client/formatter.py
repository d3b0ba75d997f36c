"""Human readable rendering of counters and byte/bit magnitudes."""

from __future__ import annotations

from typing import List, Tuple, Union

Number = Union[int, float]

# Binary magnitude bands, largest first
_BANDS: List[Tuple[int, str]] = [
    (1 << 40, "T"),
    (1 << 30, "G"),
    (1 << 20, "M"),
    (1 << 10, "K"),
]


def _plain(n: Number) -> str:
    if isinstance(n, float) and n.is_integer():
        return str(int(n))
    return str(n)


def format_integer(n: Number) -> str:
    """Insert a comma every three digits of the integer part.

    ``1234567`` becomes ``"1,234,567"``; values under 1000 are unchanged.
    """

    text = _plain(n)
    head, dot, tail = text.partition(".")
    groups: List[str] = []
    while len(head) > 3:
        groups.insert(0, head[-3:])
        head = head[:-3]
    groups.insert(0, head)
    return ",".join(groups) + dot + tail


def format_magnitude(n: Number) -> str:
    """Scale ``n`` to the largest binary band it reaches.

    Returns two decimals plus a ``T``/``G``/``M``/``K`` suffix, or the bare
    integer below 1024. Only defined for non-negative finite numbers.
    """

    for divisor, suffix in _BANDS:
        if n >= divisor:
            return f"{n / divisor:.2f}{suffix}"
    return _plain(n)


def format_bytes(n: Number) -> str:
    return format_magnitude(n) + "B"


def format_bits(n: Number) -> str:
    return format_magnitude(n) + "b"
