#!/usr/bin/env python3

# standards
import inspect
from typing import Any


async def maybe_await(value: Any) -> Any:
    """
    Interceptors, transformers and hooks may be plain functions or coroutine functions. Call them, then pass the result through
    this.
    """
    if inspect.isawaitable(value):
        return await value
    return value


def stringify(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)
