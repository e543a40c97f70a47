# SPDX-License-Identifier: MIT
"""
Tagged results for operations that degrade gracefully.

``Ok`` is the normal path, ``Recovered`` carries a fallback value together
with the warning that explains why the fallback was used, and ``Fatal``
wraps an error the caller has to act on.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from memorylink.core.exceptions import MemoryLinkError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Recovered(Generic[T]):
    value: T
    warning: str

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Fatal:
    error: MemoryLinkError

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def value(self) -> Any:
        raise self.error


Outcome = Union[Ok[T], Recovered[T], Fatal]


def unwrap(outcome: "Outcome") -> Any:
    """Return the carried value, raising the wrapped error for ``Fatal``."""
    return outcome.value
