#!/usr/bin/env python3

# standards
from abc import ABC, abstractmethod
from typing import ClassVar

# relais
from ..datastructures import Response, TransportInit


class Engine(ABC):

    id: ClassVar[str]

    @abstractmethod
    async def request(self, url: str, init: TransportInit) -> Response:
        """
        Perform one HTTP request, and return the response from the server, or raise an exception. This is the transport function
        used by `HttpRequest` when no feature or pre-transport hook supplies another one.

        The URL is final, and `init.headers` already holds the evaluated headers, including `Content-Type` for encoded bodies. The
        engine should follow redirects, and return the response as soon as the headers are in: the body is read later, through
        `Response.body`, so that it can be streamed.

        If `init.signal` fires, the engine should stop waiting and raise `RequestAborted`. If the underlying library can't be
        interrupted, the engine should at least make sure that a response arriving after the abort gets closed.
        """

    def short_code(self) -> str:
        return self.id
