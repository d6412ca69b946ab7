#!/usr/bin/env python3

"""
Server-sent events. `SSERequest` shares the configuration and the request interceptors of `HttpRequest`, but instead of a
response body it delivers each message of the stream to its listeners.
"""

# standards
import asyncio
import codecs
from collections import defaultdict
from dataclasses import dataclass
import json
import re
import threading
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Type

# 3rd parties
import requests

# relais
from .datastructures import ABORTED_MESSAGE, HttpError, RequestAborted, WrappedSubscription
from .deferred import evaluate
from .interceptors import Produce, apply_response_body_transformers, finalise_url, run_error_interceptors, run_request_interceptors
from .request import BaseRequest
from .version import RELAIS_VERSION


SSEListener = Callable[[Any], None]


@dataclass(frozen=True)
class MessageEvent:
    data: str
    event: str = 'message'
    last_event_id: str = ''


class EventSource:
    """
    Base class for the stream-connection primitive. Implementations start connecting when instantiated, and call the listeners
    registered for 'open', 'message' (with a `MessageEvent`) and 'error', on the event loop's thread.
    """

    def __init__(self, url: str, headers: Optional[Dict[str, str]] = None) -> None:
        self.url = url
        self.headers = dict(headers or {})
        self.closed = False
        self._listeners: Dict[str, List[Callable]] = defaultdict(list)

    def add_listener(self, event_type: str, listener: Callable) -> None:
        self._listeners[event_type].append(listener)

    def remove_listener(self, event_type: str, listener: Callable) -> None:
        if listener in self._listeners[event_type]:
            self._listeners[event_type].remove(listener)

    def dispatch(self, event_type: str, event: Any = None) -> None:
        if self.closed:
            return
        for listener in list(self._listeners[event_type]):
            listener(event)

    def close(self) -> None:
        self.closed = True


def iter_sse_lines(chunks: Iterable[bytes]) -> Iterator[str]:
    """
    Split a byte stream into lines. CR, LF and CRLF all end a line. Chunk boundaries may fall anywhere, even within a multi-byte
    character.
    """
    decoder = codecs.getincrementaldecoder('UTF-8')(errors='replace')
    buffer = ''
    for chunk in chunks:
        buffer += decoder.decode(chunk)
        # a trailing CR might be the first half of a CRLF
        cut = len(buffer) - 1 if buffer.endswith('\r') else len(buffer)
        *lines, rest = re.split(r'\r\n|\r|\n', buffer[:cut])
        yield from lines
        buffer = rest + buffer[cut:]
    buffer += decoder.decode(b'', final=True)
    if buffer:
        yield buffer.rstrip('\r')


def iter_sse_events(lines: Iterable[str]) -> Iterator[MessageEvent]:
    """
    Parse the `text/event-stream` format. Events are dispatched on blank lines; comments and unknown fields are ignored, and so is
    an event with no data.
    """
    data: List[str] = []
    event_type = ''
    last_event_id = ''
    for line in lines:
        if not line:
            if data:
                yield MessageEvent('\n'.join(data), event_type or 'message', last_event_id)
            data = []
            event_type = ''
            continue
        if line.startswith(':'):
            continue
        name, _sep, value = line.partition(':')
        if value.startswith(' '):
            value = value[1:]
        if name == 'data':
            data.append(value)
        elif name == 'event':
            event_type = value
        elif name == 'id' and '\0' not in value:
            last_event_id = value


class RequestsEventSource(EventSource):
    """
    Reads the stream with a streamed `requests` GET in a daemon thread. Events are posted back to the event loop that created the
    source. There is no automatic reconnection: when the stream ends or fails, an 'error' event is emitted, and that's it.
    """

    def __init__(self, url: str, headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(url, headers)
        self.headers.setdefault('accept', 'text/event-stream')
        self.headers.setdefault('user-agent', f'relais/{RELAIS_VERSION}')
        self._loop = asyncio.get_running_loop()
        self._response: Optional[requests.Response] = None
        self._thread = threading.Thread(target=self._run, name=f'relais-sse {url}', daemon=True)
        self._thread.start()

    def _post(self, event_type: str, event: Any = None) -> None:
        if not self.closed:
            self._loop.call_soon_threadsafe(self.dispatch, event_type, event)

    def _run(self) -> None:
        try:
            with requests.get(self.url, headers=self.headers, stream=True, timeout=(30, None)) as rres:
                self._response = rres
                if self.closed:
                    return
                content_type = rres.headers.get('Content-Type', '')
                if rres.status_code != 200 or not content_type.startswith('text/event-stream'):
                    self._post('error', f'Unexpected response: {rres.status_code} {content_type}')
                    return
                self._post('open')
                for event in iter_sse_events(iter_sse_lines(rres.iter_content(chunk_size=None))):
                    if self.closed:
                        return
                    self._post(event.event, event)
        except (requests.exceptions.RequestException, OSError, ValueError) as error:
            self._post('error', error)
            return
        except Exception:  # pylint: disable=broad-except
            if self.closed:
                # urllib3 fails in its own ways when `close` pulls the response from under the reading thread
                return
            raise
        self._post('error', 'Stream ended')

    def close(self) -> None:
        super().close()
        if self._response is not None:
            # unblocks the reading thread
            self._response.close()


class SSESubscription:
    """
    Handle on an open (or opening) stream. `await subscription.ready` waits until the connection is open, and raises the
    `HttpError` of a failed or aborted connection attempt. `close()` may be called any number of times.
    """

    def __init__(self, ready: 'asyncio.Future[None]', on_close: Optional[Callable[[], None]] = None) -> None:
        self.ready = ready
        self._on_close = on_close
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._on_close is not None:
            self._on_close()


def _resolved_future(loop: asyncio.AbstractEventLoop) -> 'asyncio.Future[None]':
    future = loop.create_future()
    future.set_result(None)
    return future


def _retrieve_exception(future: 'asyncio.Future[None]') -> None:
    # so that a rejected `ready` that nobody awaits doesn't get reported as an unretrieved exception
    if not future.cancelled():
        future.exception()


class SSERequest(BaseRequest):
    """
    A subscription to a stream of server-sent events. Configure it, add listeners with `with_sse_listeners`, then `await
    execute()` to connect.

    Each message's data is parsed as JSON when possible (otherwise the raw string is kept), run through the response body
    transformers, then handed to every listener. The timeout only covers the connection attempt.
    """

    def __init__(
        self,
        url: str,
        default_builders: Sequence[Callable] = (),
        event_source: Type[EventSource] = RequestsEventSource,
        require_feature: Optional[Callable[[str], None]] = None,
        wrap_errors: bool = False,
    ) -> None:
        super().__init__(url, 'GET', default_builders, require_feature, wrap_errors)
        self._event_source_class = event_source
        self._listeners: List[SSEListener] = []
        self._tasks: Set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return f'SSERequest({self.url!r})'

    def with_sse_listeners(self, *listeners: SSEListener):
        self._listeners.extend(listeners)
        return self

    async def execute(self) -> Any:
        self._mark_used()
        try:
            subscription = await self._execute()
        except HttpError as error:
            if self._wrap_errors:
                return WrappedSubscription(error=error)
            raise
        if self._wrap_errors:
            return WrappedSubscription(subscription=subscription)
        return subscription

    def _fan_out(self, data: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(data)
            except Exception as error:  # pylint: disable=broad-except
                # one failing listener doesn't deprive the others
                self.get_logger().warn('SSE listener %r failed: %r', listener, error)

    def _spawn(self, coroutine) -> None:
        task = asyncio.ensure_future(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._log_task_failure)

    def _log_task_failure(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            self.get_logger().error('Error interceptor for %s failed: %r', self.url, task.exception())

    async def _execute(self) -> SSESubscription:
        self.require_feature('sse-request')
        self._apply_defaults()
        view = self._view
        logger = self.get_logger()
        loop = asyncio.get_running_loop()

        controls = self._controls()
        try:
            outcome = await run_request_interceptors(list(self._config.request_interceptors), view, controls, self._signal)
        except RequestAborted:
            error = HttpError(-1, ABORTED_MESSAGE)
            await run_error_interceptors(error, view.error_interceptors)
            raise error from None
        if isinstance(outcome, Produce):
            logger.debug('SSE request to %s answered by a request interceptor', self.url)
            data = outcome.value
            if not controls.transformers_skipped:
                data = await apply_response_body_transformers(data, view.response_body_transformers, view)
            self._fan_out(data)
            subscription = SSESubscription(_resolved_future(loop))
            subscription.closed = True
            return subscription

        url = finalise_url(self._config, view)
        headers = {}
        for name, value in self._config.headers.items():
            value = evaluate(value, view)
            if value is not None:
                headers[name] = str(value)

        timer: Optional[asyncio.TimerHandle] = None
        if self._config.timeout:

            def on_timeout() -> None:
                logger.debug('SSE connection to %s timed out after %d ms', url, self._config.timeout)
                self._signal.abort('timeout')

            timer = loop.call_later(self._config.timeout / 1000, on_timeout)

        def clear_timer() -> None:
            if timer is not None:
                timer.cancel()

        try:
            source = self._event_source_class(url, headers)
        except Exception as exc:  # pylint: disable=broad-except
            clear_timer()
            raise HttpError(-1, 'Failed to open SSE connection', exc) from exc
        logger.debug('SSE connection to %s opening', url)

        ready: 'asyncio.Future[None]' = loop.create_future()
        ready.add_done_callback(_retrieve_exception)
        messages: 'asyncio.Queue[MessageEvent]' = asyncio.Queue()

        def on_open(_event: Any) -> None:
            clear_timer()
            logger.debug('SSE connection to %s open', url)
            if not ready.done():
                ready.set_result(None)

        def on_error(event: Any) -> None:
            clear_timer()
            if self._signal.aborted:
                return
            error = HttpError(-1, 'SSE connection error', event)
            logger.warn('SSE connection to %s failed: %r', url, event)
            if not ready.done():
                ready.set_exception(error)
            self._spawn(run_error_interceptors(error, view.error_interceptors))

        def on_message(event: MessageEvent) -> None:
            messages.put_nowait(event)

        async def deliver_messages() -> None:
            while True:
                event = await messages.get()
                data: Any = event.data
                try:
                    data = json.loads(data)
                except ValueError:
                    pass
                try:
                    data = await apply_response_body_transformers(data, view.response_body_transformers, view)
                except Exception as error:  # pylint: disable=broad-except
                    logger.warn('SSE response body transformer failed: %r', error)
                    continue
                self._fan_out(data)

        def detach() -> None:
            clear_timer()
            source.remove_listener('open', on_open)
            source.remove_listener('error', on_error)
            source.remove_listener('message', on_message)
            source.close()
            delivery.cancel()

        def on_abort() -> None:
            detach()
            error = HttpError(-1, ABORTED_MESSAGE)
            logger.debug('SSE connection to %s aborted (%s)', url, self._signal.reason)
            if not ready.done():
                ready.set_exception(error)
            self._spawn(run_error_interceptors(error, view.error_interceptors))

        source.add_listener('open', on_open)
        source.add_listener('error', on_error)
        source.add_listener('message', on_message)
        delivery = asyncio.ensure_future(deliver_messages())
        self._signal.add_listener(on_abort)

        def on_close() -> None:
            if not ready.done():
                # closing before the connection is open counts as an abort
                self._signal.abort('closed')
                return
            self._signal.remove_listener(on_abort)
            detach()

        return SSESubscription(ready, on_close)
