#!/usr/bin/env python3

# standards
from typing import Dict, Type

# relais
from .base import Engine


ALL_ENGINES: Dict[str, Type[Engine]] = {}


def register_engine(engine_class: Type[Engine]) -> Type[Engine]:
    """
    Make `engine_class` loadable by its id, e.g. `HttpRequestFactory('requests')`. Returns the class, so this can be used as a
    class decorator.
    """
    registered = ALL_ENGINES.get(engine_class.id)
    if registered is not None and registered is not engine_class:
        raise ValueError(f'Engine id {engine_class.id!r} is already used by {registered.__name__}')
    ALL_ENGINES[engine_class.id] = engine_class
    return engine_class
