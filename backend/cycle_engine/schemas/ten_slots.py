"""Fixed-length container for the ten slots of a cycle."""

from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import Generic, TypeVar

from cycle_engine.errors import InvariantViolation

T = TypeVar("T")
U = TypeVar("U")

SLOT_COUNT = 10


class TenSlots(Sequence, Generic[T]):
    """Immutable sequence that only exists with exactly ten elements."""

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[T]):
        items = tuple(items)
        if len(items) != SLOT_COUNT:
            raise InvariantViolation(
                "slot_count",
                f"Expected {SLOT_COUNT} slots, got {len(items)}",
                count=len(items),
            )
        self._items = items

    def __getitem__(self, index):
        return self._items[index]

    def __len__(self) -> int:
        return SLOT_COUNT

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __eq__(self, other) -> bool:
        if isinstance(other, TenSlots):
            return self._items == other._items
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._items)

    def __repr__(self) -> str:
        return f"TenSlots({list(self._items)!r})"

    def map(self, fn: Callable[[T], U]) -> "TenSlots[U]":
        return TenSlots(fn(item) for item in self._items)

    def to_list(self) -> list[T]:
        return list(self._items)
