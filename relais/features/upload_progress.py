#!/usr/bin/env python3

# standards
import asyncio
from typing import Callable, Optional

# relais
from ..config import ConfigView
from ..datastructures import Response, Transport, TransportInit
from ..engines.register import register_engine
from ..engines.requests import RequestsEngine
from ..logs import LoggerFacade
from .base import Feature, FeatureDelegates
from .progress import ProgressEmitter


UploadCallback = Callable[[int, int], None]


class ProgressReader:
    """
    File-like wrapper around a request body. `http.client` sends file-like bodies block by block, so counting the bytes read
    gives us the send progress. `read` is called in the transport's worker thread.
    """

    def __init__(self, data: bytes, on_read: UploadCallback) -> None:
        self._data = data
        self._position = 0
        self._on_read = on_read

    def __len__(self) -> int:
        return len(self._data)

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = len(self._data) - self._position
        chunk = self._data[self._position : self._position + size]
        self._position += len(chunk)
        if chunk:
            self._on_read(self._position, len(self._data))
        return chunk


class UploadProgressEngine(RequestsEngine):
    """
    A `RequestsEngine` that can report send progress, for bodies that are bytes or strings. Other bodies are sent as is.
    """

    id = 'requests-upload'

    def short_code(self) -> str:
        return 'rq+up'

    async def request_with_progress(self, url: str, init: TransportInit, on_progress: UploadCallback) -> Response:
        body = init.body
        if isinstance(body, str):
            body = body.encode('UTF-8')
        if isinstance(body, bytes) and body:
            return await self.send(url, init, ProgressReader(body, on_progress))
        return await self.send(url, init, body)


class UploadProgressFeature(Feature):
    """
    Swaps in a transport that reports send progress to the request's `on_upload_progress` handlers. Requests without an upload
    handler keep their transport.
    """

    name = 'upload-progress'
    priority = 10

    def __init__(self, engine: Optional[UploadProgressEngine] = None) -> None:
        self.engine = engine if engine is not None else UploadProgressEngine()

    def get_delegates(self, factory) -> FeatureDelegates:
        return FeatureDelegates(request={'get_transport': self.get_transport})

    def get_transport(self, transport: Transport, view: ConfigView, logger: LoggerFacade) -> Transport:
        if ProgressEmitter.for_phase('upload', view) is None:
            return transport

        async def upload_transport(url: str, init: TransportInit) -> Response:
            loop = asyncio.get_running_loop()
            # one per call, so that every retry attempt reports its own progress
            emitter = ProgressEmitter.for_phase('upload', view, logger=logger)

            def on_progress(sent: int, total: int) -> None:
                # called from the worker thread
                loop.call_soon_threadsafe(_report, sent, total)

            def _report(sent: int, total: int) -> None:
                emitter.total_bytes = total
                if sent >= total:
                    emitter.finish(sent)
                else:
                    emitter.tick(sent)

            return await self.engine.request_with_progress(url, init, on_progress)

        return upload_transport


register_engine(UploadProgressEngine)
