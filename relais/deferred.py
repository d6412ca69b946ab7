#!/usr/bin/env python3

"""
Configuration fields (headers, path params, query params, body) can hold either a fixed value, or a function that computes the
value lazily, at read time. Rather than checking `callable(...)` wherever such a field is read, builders wrap every value in one of
the two classes below, and readers just call `evaluate`.
"""

# standards
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union


T = TypeVar('T')


@dataclass(frozen=True)
class Fixed(Generic[T]):
    value: T

    def evaluate(self, view: Any = None) -> T:
        return self.value


@dataclass(frozen=True)
class Computed(Generic[T]):
    """
    A value computed on demand. Header and param functions receive the read-only config view, so they can see sibling values.
    Body producers take no arguments, see `evaluate_producer`.
    """

    function: Callable[..., T]

    def evaluate(self, view: Any = None) -> T:
        return self.function(view)

    def evaluate_producer(self) -> T:
        return self.function()


Deferred = Union[Fixed[T], Computed[T]]


def deferred(value: Union[T, Callable[..., T], 'Deferred[T]']) -> 'Deferred[T]':
    if isinstance(value, (Fixed, Computed)):
        return value
    if callable(value):
        return Computed(value)
    return Fixed(value)


def evaluate(value: Any, view: Any = None) -> Any:
    """
    Evaluate a deferred value against `view`. Anything that isn't a deferred value (including `None`) is returned as is.
    """
    if isinstance(value, (Fixed, Computed)):
        return value.evaluate(view)
    return value
