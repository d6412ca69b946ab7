#!/usr/bin/env python3

# standards
import asyncio
from typing import Any, Iterator, Optional, Union

# 3rd parties
import requests

# relais
from ..datastructures import (
    ByteStream,
    ConnectionError,  # pylint: disable=redefined-builtin
    Headers,
    RequestAborted,
    Response,
    TransportError,
    TransportInit,
    TransportTimeout,
)
from ..signals import AbortSignal
from ..version import RELAIS_VERSION
from .base import Engine
from .register import register_engine


DEFAULT_CHUNK_SIZE = 8192

THREAD_TIMEOUT_GRACE = 1.0


class RequestsEngine(Engine):
    """
    Transport built on `requests`. The blocking calls (sending the request, reading each body chunk) run in worker threads, the
    event loop only awaits them.
    """

    id = 'requests'

    def __init__(self, chunk_size: Union[int, str] = DEFAULT_CHUNK_SIZE, session: Optional[requests.Session] = None) -> None:
        self.chunk_size = int(chunk_size)
        self.session = session if session is not None else requests.Session()
        self.session.headers['User-Agent'] = f'relais/{RELAIS_VERSION}'

    def short_code(self) -> str:
        return 'rq'

    async def request(self, url: str, init: TransportInit) -> Response:
        return await self.send(url, init, init.body)

    async def send(self, url: str, init: TransportInit, data: Any) -> Response:
        """
        Send the request with `data` as the body, in place of `init.body`.
        """
        init.signal.raise_if_aborted()
        rres = await asyncio.to_thread(self._send, url, init, data)
        return Response(
            status_code=rres.status_code,
            reason=rres.reason,
            headers=Headers(rres.raw._fp.headers.items()),  # pylint: disable=protected-access
            body=RequestsByteStream(rres, self.chunk_size, init.signal),
            url=rres.url,
        )

    def _send(self, url: str, init: TransportInit, data: Any) -> requests.Response:
        try:
            rres = self.session.request(
                url=url,
                method=init.method,
                headers=init.headers,
                data=data,
                allow_redirects=True,
                stream=True,
                # the request's own timer fires first, this only ends worker threads left behind by an abort
                timeout=(init.timeout / 1000 + THREAD_TIMEOUT_GRACE) if init.timeout else None,
            )
        except requests.exceptions.Timeout as error:
            raise TransportTimeout(str(error)) from error
        except requests.exceptions.ConnectionError as error:
            raise ConnectionError(str(error)) from error
        except requests.exceptions.RequestException as error:
            raise TransportError(str(error)) from error
        if init.signal.aborted:
            # nobody is awaiting this response anymore
            rres.close()
            raise RequestAborted(init.signal.reason)
        return rres


class RequestsByteStream(ByteStream):

    def __init__(self, rres: requests.Response, chunk_size: int, signal: AbortSignal) -> None:
        self._rres = rres
        self._iterator: Iterator[bytes] = rres.iter_content(chunk_size)
        self._signal = signal
        self._closed = False

    def _next_chunk(self) -> Optional[bytes]:
        try:
            for chunk in self._iterator:
                if self._signal.aborted:
                    break
                if chunk:
                    return chunk
        except requests.exceptions.RequestException as error:
            self._rres.close()
            raise ConnectionError(str(error)) from error
        self._rres.close()
        return None

    async def read_chunk(self) -> Optional[bytes]:
        if self._closed:
            return None
        chunk = await asyncio.to_thread(self._next_chunk)
        if chunk is None:
            self._closed = True
        return chunk

    async def cancel(self) -> None:
        self._closed = True
        self._rres.close()


register_engine(RequestsEngine)
