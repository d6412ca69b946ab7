#!/usr/bin/env python3

# standards
import asyncio
import json
from typing import Any, List, Optional, Tuple

# relais
from relais import Engine, Response, TransportInit
from relais.sse import EventSource
from relais.utils import maybe_await


def json_response(value: Any, status_code: int = 200, reason: str = 'OK', **kwargs) -> Response:
    return Response.from_bytes(
        json.dumps(value),
        status_code=status_code,
        reason=reason,
        headers={'Content-Type': 'application/json'},
        **kwargs,
    )


def text_response(text: str, content_type: str = 'text/plain; charset=UTF-8', status_code: int = 200) -> Response:
    return Response.from_bytes(text, status_code=status_code, headers={'Content-Type': content_type})


class DummyEngine(Engine):
    """
    An engine that doesn't do any I/O. It returns (or raises) the given outcomes in order, the last one being repeated. Outcomes
    can also be functions of `(url, init)`, or `None` for a request that never completes. A `Response` can only be read once, so
    outcomes that get repeated should be functions.
    """

    id = 'dummy'

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes) or [lambda url, init: json_response({})]
        self.calls: List[Tuple[str, TransportInit]] = []

    def short_code(self) -> str:
        return 'dm'

    async def request(self, url: str, init: TransportInit) -> Response:
        self.calls.append((url, init))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if outcome is None:
            await asyncio.sleep(60)
        if callable(outcome):
            outcome = await maybe_await(outcome(url, init))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    @property
    def urls(self) -> List[str]:
        return [url for url, _init in self.calls]


class DummyEventSource(EventSource):
    """
    An event source driven by the test: call `dispatch('open')`, `dispatch('message', MessageEvent(...))`, etc.
    """

    instances: List['DummyEventSource'] = []

    def __init__(self, url: str, headers: Optional[dict] = None) -> None:
        super().__init__(url, headers)
        DummyEventSource.instances.append(self)

    @classmethod
    def last(cls) -> 'DummyEventSource':
        return cls.instances[-1]
