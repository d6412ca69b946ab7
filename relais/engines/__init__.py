#!/usr/bin/env python3

# standards
from typing import Union

# relais
from .base import Engine
from .register import ALL_ENGINES, register_engine
from .requests import RequestsEngine


EngineSpec = Union[Engine, str]


def load_engine(spec: EngineSpec = 'requests') -> Engine:
    if isinstance(spec, Engine):
        return spec
    if ':' in spec:
        # String args can be passed to the Engine constructor by putting them after a colon, e.g. "requests:4096" for the chunk
        # size. Engines needing more complex constructor args can just be instantiated by the client code.
        engine_id, *engine_args = spec.split(':')
    else:
        engine_id = spec
        engine_args = []
    engine_class = ALL_ENGINES[engine_id]
    return engine_class(*engine_args)
