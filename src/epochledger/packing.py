"""
epochledger/packing.py

Fixed-width field packing.

Several small unsigned integers share one integer word so that each
(distributor, account) pair is described by a single value. Field 0 sits in
the least significant bits.

Usage:
    layout = BitLayout([("amount", 128), ("boost_epoch", 64), ("unlock_epoch", 64)])
    word = layout.pack(amount=10**18, boost_epoch=8, unlock_epoch=4)
    amount, boost_epoch, unlock_epoch = layout.unpack(word)
"""

from typing import Dict, Iterable, List, Sequence, Tuple

from .exceptions import PackingOverflowError


def _mask(width: int) -> int:
    return (1 << width) - 1


def pack(values: Sequence[int], widths: Sequence[int]) -> int:
    """Pack values into one word, each masked to its declared width."""
    if len(values) != len(widths):
        raise ValueError(f"Expected {len(widths)} values, got {len(values)}")

    word = 0
    shift = 0
    for value, width in zip(values, widths):
        if value < 0 or value > _mask(width):
            raise PackingOverflowError(f"Value {value} does not fit in {width} bits")
        word |= value << shift
        shift += width
    return word


def unpack(word: int, widths: Sequence[int]) -> Tuple[int, ...]:
    """Inverse of pack()."""
    total = sum(widths)
    if word < 0 or word > _mask(total):
        raise PackingOverflowError(f"Word does not fit in {total} bits")

    values = []
    shift = 0
    for width in widths:
        values.append((word >> shift) & _mask(width))
        shift += width
    return tuple(values)


class BitLayout:
    """Named fixed-width fields packed into one word."""

    def __init__(self, fields: Iterable[Tuple[str, int]]):
        self.fields: List[Tuple[str, int]] = list(fields)
        if not self.fields:
            raise ValueError("A layout needs at least one field")

        names = [name for name, _ in self.fields]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate field names in layout: {names}")
        for name, width in self.fields:
            if width <= 0:
                raise ValueError(f"Field {name} has non-positive width {width}")

        self.names: Tuple[str, ...] = tuple(names)
        self.widths: Tuple[int, ...] = tuple(width for _, width in self.fields)

    @property
    def total_bits(self) -> int:
        return sum(self.widths)

    def pack(self, **values: int) -> int:
        """Pack named values; omitted fields are zero."""
        unknown = set(values) - set(self.names)
        if unknown:
            raise ValueError(f"Unknown fields: {sorted(unknown)}")
        return pack([values.get(name, 0) for name in self.names], self.widths)

    def pack_values(self, *values: int) -> int:
        return pack(values, self.widths)

    def unpack(self, word: int) -> Tuple[int, ...]:
        return unpack(word, self.widths)

    def unpack_dict(self, word: int) -> Dict[str, int]:
        return dict(zip(self.names, self.unpack(word)))

    def field(self, word: int, name: str) -> int:
        return self.unpack_dict(word)[name]

    def replace(self, word: int, **changes: int) -> int:
        """Return word with some fields replaced."""
        current = self.unpack_dict(word)
        current.update(changes)
        return self.pack(**current)

    def __repr__(self) -> str:
        inner = ", ".join(f"{name}:{width}" for name, width in self.fields)
        return f"BitLayout({inner})"
