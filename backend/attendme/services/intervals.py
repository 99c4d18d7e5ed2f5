from __future__ import annotations

from typing import Protocol, TypeVar


class _Comparable(Protocol):
    def __le__(self, other, /) -> bool: ...


T = TypeVar("T", bound=_Comparable)


def overlaps(a_start: T, a_end: T, b_start: T, b_end: T) -> bool:
    """Closed-interval intersection. Single-day ranges (start == end) count as one day."""
    return a_start <= b_end and b_start <= a_end
