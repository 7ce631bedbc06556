from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

from .errors import LoadError


T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: LoadError

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


def attempt(fn: Callable[..., T], *args, **kwargs) -> Result[T]:
    """Run `fn` and capture a raised `LoadError` as `Err`.

    Other exceptions propagate: they indicate bugs, not load failures.
    """
    try:
        return Ok(fn(*args, **kwargs))
    except LoadError as exc:
        return Err(exc)
