"""A generic representation of success and failure.

Every step of node convergence returns either ``Ok(value)`` or
``Error(error)``. Steps are chained with ``and_then``: the continuation runs
only when the previous step succeeded, so the first error short-circuits the
rest of the chain and is carried to the end unchanged.

    retrieve_network(node).and_then(wait_for_node).and_then(configure)

Results are consumed with ``match``, which requires both handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")
R = TypeVar("R")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome holding a value."""

    value: T

    @property
    def is_ok(self) -> bool:
        return True

    @property
    def is_error(self) -> bool:
        return False

    def and_then(self, func: Callable[[T], Result[U]]) -> Result[U]:
        return func(self.value)

    def match(self, *, ok: Callable[[T], R], error: Callable[[Any], R]) -> R:
        return ok(self.value)


@dataclass(frozen=True)
class Error:
    """Failed outcome holding a message or a list of messages."""

    error: Any

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def is_error(self) -> bool:
        return True

    def and_then(self, func: Callable[[Any], Result[U]]) -> Error:
        return self

    def match(self, *, ok: Callable[[Any], R], error: Callable[[Any], R]) -> R:
        return error(self.error)

    def __str__(self) -> str:
        if isinstance(self.error, list):
            return "; ".join(str(item) for item in self.error if item)
        return str(self.error)


Result = Union[Ok[T], Error]


def ok(value: T = None) -> Ok[T]:
    return Ok(value)


def error(message: Any) -> Error:
    return Error(message)


def any_ok(*results: Result[T]) -> Result[T]:
    """Return the first successful result.

    If none succeeded, return an Error holding every individual error
    payload in the order the results were given.
    """
    for result in results:
        if result.is_ok:
            return result
    return Error([result.error for result in results])
