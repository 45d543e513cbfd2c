"""
Map-with-collected-errors.

Readers of the movement log must not fail a whole query because one stored
row is undecodable, and the batch processor must not abort because one
request fails.  Both loops are expressed with ``collect``: apply a function
to every input, keep the values, and partition the expected failures out
with the input that caused them.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class Failure(Generic[T]):
    """One input that raised, with its position and the exception."""

    index: int
    source: T
    error: BaseException


@dataclass(frozen=True)
class Collected(Generic[T, R]):
    values: tuple[R, ...] = field(default_factory=tuple)
    failures: tuple[Failure[T], ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return len(self.values) + len(self.failures)


def collect(
    items: Iterable[T],
    fn: Callable[[T], R],
    *,
    catch: tuple[type[BaseException], ...] = (ValueError, TypeError, KeyError),
    on_failure: Callable[[Failure[T]], None] | None = None,
) -> Collected[T, R]:
    """
    Apply ``fn`` to each item, collecting results and caught failures.

    Only exceptions in ``catch`` are collected; anything else propagates.
    ``on_failure`` is called for each failure as it happens (used for
    logging).
    """
    values: list[R] = []
    failures: list[Failure[T]] = []
    for index, item in enumerate(items):
        try:
            values.append(fn(item))
        except catch as exc:
            failure = Failure(index=index, source=item, error=exc)
            failures.append(failure)
            if on_failure is not None:
                on_failure(failure)
    return Collected(values=tuple(values), failures=tuple(failures))
