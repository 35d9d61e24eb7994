"""Per-connection subscription state."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True, slots=True)
class AllSearches:
    """Receive detections for every search."""

    def includes(self, search_id: str) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class OnlySearches:
    """Receive detections only for the listed searches."""

    search_ids: frozenset[str]

    def includes(self, search_id: str) -> bool:
        return search_id in self.search_ids


Subscription = Union[AllSearches, OnlySearches]


def subscription_for(search_ids: Iterable[str]) -> Subscription:
    """Build the subscription a ``subscribe`` message asks for.

    An empty list means "everything", not "nothing".
    """

    selected = frozenset(search_ids)
    if not selected:
        return AllSearches()
    return OnlySearches(selected)


__all__ = ["AllSearches", "OnlySearches", "Subscription", "subscription_for"]
