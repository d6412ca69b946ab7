#!/usr/bin/env python3

# standards
import asyncio
import json
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union
from urllib.parse import urlencode

# relais
from .config import ConfigView, ProgressHandlers, RequestConfig, classify_mime_type
from .datastructures import (
    ABORTED_MESSAGE,
    CharsetDetectionFailure,
    FeatureNotEnabled,
    FormData,
    HttpError,
    RequestAborted,
    RequestReusedError,
    Response,
    TransportInit,
    UnsupportedBodyError,
    URLFinalisedError,
    WrappedResult,
)
from .deferred import Computed, Fixed, deferred, evaluate
from .engines import Engine, load_engine
from .delegates import RequestDelegates
from .interceptors import (
    Produce,
    RequestControls,
    ResponseControls,
    apply_response_body_transformers,
    finalise_url,
    provisional_url,
    run_error_interceptors,
    run_request_interceptors,
    run_response_interceptors,
)
from .logs import LOG_LEVELS, LogEntry, LoggerFacade, as_logger_facade
from .signals import AbortSignal
from .utils import maybe_await


# Errors that point at a bug in the calling code. They are never turned into an `HttpError`, not even in wrap mode.
USAGE_ERRORS = (URLFinalisedError, RequestReusedError, FeatureNotEnabled, UnsupportedBodyError)

CREDENTIALS_POLICIES = ('omit', 'same-origin', 'include')


def _no_feature(name: str) -> None:
    raise FeatureNotEnabled(f'Feature {name!r} is not enabled. Requests must be created by a factory that uses it')


class BaseRequest:
    """
    State and builders shared by `HttpRequest` and `SSERequest`. Every builder returns `self`, for chaining.

    Default builders are `(request, view)` callables supplied by the factory. They're applied when the request is executed, not
    when it's created, so defaults added in between (e.g. by an adapter attached meanwhile) still apply.
    """

    def __init__(
        self,
        url: str,
        method: str = 'GET',
        default_builders: Sequence[Callable] = (),
        require_feature: Optional[Callable[[str], None]] = None,
        wrap_errors: bool = False,
    ) -> None:
        self._config = RequestConfig(method=method.upper(), template_url_history=[url])
        self._view = ConfigView(self._config)
        self._default_builders = default_builders
        self._skip_defaults = False
        self._require_feature = require_feature or _no_feature
        self._wrap_errors = wrap_errors
        self._logger = LoggerFacade()
        self._signal = AbortSignal()
        self._hash_function: Optional[Callable[[], str]] = None
        self._used = False

    @property
    def config(self) -> ConfigView:
        return self._view

    @property
    def meta(self) -> Mapping[str, Any]:
        return self._view.meta

    @property
    def url(self) -> str:
        """
        The URL as it stands, i.e. the final URL once it's been finalised, the provisional one before that
        """
        return provisional_url(self._config, self._view)

    @property
    def signal(self) -> AbortSignal:
        return self._signal

    def get_logger(self) -> LoggerFacade:
        return self._logger.with_minimum_level(self._config.log_level)

    def require_feature(self, name: str) -> None:
        self._require_feature(name)

    def set_hash_function(self, function: Callable[[], str]) -> None:
        self._hash_function = function

    def get_hash(self) -> str:
        if self._hash_function is None:
            _no_feature('request-hash')
        return self._hash_function()

    def blank(self):
        """
        Don't apply the factory's defaults to this request. Useful when calling a third-party URL that shouldn't receive the
        headers or interceptors meant for your own API.
        """
        self._skip_defaults = True
        return self

    def with_url_param(self, name: str, value: Any):
        self._config.url_params[name] = deferred(value)
        return self

    def with_url_params(self, params: Mapping[str, Any]):
        for name, value in params.items():
            self.with_url_param(name, value)
        return self

    def with_query_param(self, name: str, value: Any):
        self._config.query_params[name] = deferred(value)
        return self

    def with_query_params(self, params: Mapping[str, Any]):
        for name, value in params.items():
            self.with_query_param(name, value)
        return self

    def with_header(self, name: str, value: Any):
        self._config.headers[name.lower()] = deferred(value)
        return self

    def with_headers(self, headers: Mapping[str, Any]):
        for name, value in headers.items():
            self.with_header(name, value)
        return self

    def with_timeout(self, timeout_ms: int):
        if timeout_ms < 0:
            raise ValueError(f'Timeout must be positive, got {timeout_ms}')
        self._config.timeout = timeout_ms
        return self

    def with_meta(self, key_or_mapping: Union[str, Mapping[str, Any]], value: Any = None):
        if isinstance(key_or_mapping, str):
            self._config.meta[key_or_mapping] = value
        else:
            self._config.meta.update(key_or_mapping)
        return self

    def with_logger(self, logger: Union[LoggerFacade, logging.Logger]):
        self._logger = as_logger_facade(logger)
        self._config.logger = self._logger
        return self

    def with_log_level(self, level: str):
        if level not in LOG_LEVELS:
            raise ValueError(f'Unknown log level: {level!r}')
        self._config.log_level = level
        return self

    def with_request_interceptors(self, *interceptors: Callable):
        self._config.request_interceptors.extend(interceptors)
        return self

    def with_error_interceptors(self, *interceptors: Callable):
        self._config.error_interceptors.extend(interceptors)
        return self

    def with_response_body_transformers(self, *transformers: Callable):
        self._config.response_body_transformers.extend(transformers)
        return self

    def with_abort_listeners(self, *listeners: Callable[[], None]):
        for listener in listeners:
            self._signal.add_listener(listener)
        return self

    def _mark_used(self) -> None:
        if self._used:
            raise RequestReusedError(
                f'{self.__class__.__name__} objects cannot be reused. Call a factory method for every new request'
            )
        self._used = True

    def _apply_defaults(self) -> None:
        if self._skip_defaults:
            return
        # a copy, builders may register more builders
        for builder in list(self._default_builders):
            builder(self, self._view)

    def _controls(self) -> RequestControls:
        return RequestControls(self._config, self._view, self._signal, self.get_logger(), self.get_hash)


class HttpRequest(BaseRequest):
    """
    One HTTP request. Configure it with the `with_*` builders, then `await request.execute()`, once.

    Unless the factory is in wrap mode, `execute()` returns the parsed response body (a dict or list for JSON responses, a str for
    text, a `Blob` for anything else, `None` for 204 responses), and raises `HttpError` on failure. In wrap mode it never raises
    `HttpError`, but returns a `WrappedResult` instead.
    """

    def __init__(
        self,
        url: str,
        method: str = 'GET',
        default_builders: Sequence[Callable] = (),
        delegates: Optional[RequestDelegates] = None,
        engine: Optional[Engine] = None,
        before_transport_hooks: Sequence[Callable] = (),
        require_feature: Optional[Callable[[str], None]] = None,
        wrap_errors: bool = False,
    ) -> None:
        super().__init__(url, method, default_builders, require_feature, wrap_errors)
        self._delegates = delegates if delegates is not None else RequestDelegates()
        self._engine = engine
        self._before_transport_hooks = before_transport_hooks

    def __repr__(self) -> str:
        return f'HttpRequest({self._config.method} {self.url!r})'

    # Body

    def with_body(self, body: Any):
        """
        Use `body` as is. It may be a producer function, called without arguments, after the request interceptors have run.
        """
        self._config.body = Computed(body if callable(body) else (lambda: body))
        return self

    def with_json_body(self, value: Any):
        self.with_header('content-type', 'application/json')

        def produce_json() -> Optional[str]:
            if isinstance(value, (str, bytes)):
                try:
                    json.loads(value)
                except ValueError:
                    self.get_logger().error('with_json_body: passed body is not a valid JSON string: %r', value)
                    return None
                return value if isinstance(value, str) else value.decode('UTF-8')
            return json.dumps(value)

        self._config.body = Computed(produce_json)
        return self

    def with_form_encoded_body(self, data: Union[str, Mapping[str, Any]]):
        self.with_header('content-type', 'application/x-www-form-urlencoded')
        body = data if isinstance(data, str) else urlencode(data, doseq=True)
        self._config.body = Computed(lambda: body)
        return self

    def with_form_data_body(self, composer: Callable[[FormData], None]):
        def produce_form_data() -> FormData:
            form_data = FormData()
            composer(form_data)
            return form_data

        self._config.body = Computed(produce_form_data)
        return self

    # Transport settings

    def with_credentials_policy(self, policy: str):
        if policy not in CREDENTIALS_POLICIES:
            raise ValueError(f'Unknown credentials policy: {policy!r}')
        self._config.credentials = policy
        return self

    def with_no_cors(self):
        self._config.cors_mode = 'no-cors'
        return self

    # Response handling

    def with_accept(self, *mime_types: str):
        self._config.accepted_mime_types = list(mime_types)
        return self

    def with_accept_any(self):
        return self.with_accept('*/*')

    def accept_json(self):
        return self.with_accept('application/json')

    def with_json_mime_types(self, *patterns: str):
        self._config.json_mime_types.extend(patterns)
        return self

    def with_text_mime_types(self, *patterns: str):
        self._config.text_mime_types.extend(patterns)
        return self

    def with_response_interceptors(self, *interceptors: Callable):
        self._config.response_interceptors.extend(interceptors)
        return self

    def ignore_response_body(self):
        self._config.ignore_response_body = True
        return self

    def with_progress_handlers(self, *handlers: ProgressHandlers):
        for handler in handlers:
            if handler.on_download_progress is not None:
                self.require_feature('download-progress')
            if handler.on_upload_progress is not None:
                self.require_feature('upload-progress')
        self._config.progress_handlers.extend(handlers)
        return self

    def with_retry(self, policy: Any):
        """
        `policy` is a `RetryPolicy`, or a function that gets the config view and returns one. Fields it leaves to None take the
        retry feature's defaults.
        """
        self.require_feature('retry')
        self._config.retry = policy
        return self

    # Execution

    async def execute(self) -> Any:
        self._mark_used()
        try:
            result = await self._execute()
        except HttpError as error:
            if self._wrap_errors:
                return WrappedResult(error=error)
            raise
        if self._wrap_errors:
            return WrappedResult(response=result)
        return result

    async def _execute(self) -> Any:
        timer: Optional[asyncio.TimerHandle] = None
        try:
            self._apply_defaults()
            self._setup_headers()
            if self._config.timeout:
                timer = asyncio.get_running_loop().call_later(self._config.timeout / 1000, self._on_timeout)
            return await self._run()
        except HttpError as error:
            await run_error_interceptors(error, self._view.error_interceptors)
            raise
        except RequestAborted:
            error = HttpError(-1, ABORTED_MESSAGE)
            await run_error_interceptors(error, self._view.error_interceptors)
            raise error from None
        except USAGE_ERRORS:
            raise
        except asyncio.CancelledError:
            if not self._signal.aborted:
                raise
            error = HttpError(-1, ABORTED_MESSAGE)
            await run_error_interceptors(error, self._view.error_interceptors)
            raise error from None
        except Exception as exc:  # pylint: disable=broad-except
            error = HttpError(-1, str(exc) or 'Network error', exc)
            self.get_logger().error('Request to %s failed: %r', self.url, exc)
            await run_error_interceptors(error, self._view.error_interceptors)
            raise error from exc
        finally:
            if timer is not None:
                timer.cancel()

    def _on_timeout(self) -> None:
        self.get_logger().debug('Request to %s timed out after %d ms', self.url, self._config.timeout)
        self._signal.abort('timeout')

    def _setup_headers(self) -> None:
        headers = self._config.headers
        for name in list(headers):
            value = evaluate(headers[name], self._view)
            if value is None:
                del headers[name]
            else:
                headers[name] = Fixed(value)
        if 'accept' not in headers and self._config.accepted_mime_types:
            headers['accept'] = Fixed(', '.join(self._config.accepted_mime_types))

    async def _run(self) -> Any:
        view = self._view
        logger = self.get_logger()

        controls = self._controls()
        outcome = await self._signal.guard(
            run_request_interceptors(list(self._config.request_interceptors), view, controls, self._signal)
        )
        if isinstance(outcome, Produce):
            logger.debug('Request to %s answered by a request interceptor', self.url)
            self._log(LogEntry(self._config.method, self.url, short_circuited=True))
            if controls.transformers_skipped:
                return outcome.value
            return await self._transform(outcome.value)

        init = self._build_transport_init()
        url = finalise_url(self._config, view)
        await self._signal.guard(self._run_before_transport_hooks(init))
        engine = self._get_engine()
        transport = self._delegates.resolve_transport(init.transport or engine.request, view, logger)

        log = LogEntry(init.method, url, body_size=_body_size(init.body), engine_short_code=engine.short_code())
        logger.debug('Sending %s %s', init.method, url)
        try:
            response = await self._signal.guard(transport(url, init))
        except Exception as error:
            log.error = str(error) or error.__class__.__name__
            self._log(log)
            raise
        log.status_code = response.status_code
        self._log(log)

        response_controls = ResponseControls(logger)
        outcome = await self._signal.guard(
            run_response_interceptors(list(self._config.response_interceptors), response, view, response_controls)
        )
        if isinstance(outcome, Produce):
            await response.cancel()
            if response_controls.transformers_skipped:
                return outcome.value
            return await self._transform(outcome.value)

        if not response.ok:
            raise HttpError(response.status_code, response.reason or '', await self._read_error_body(response))

        if response.status_code == 204 or self._config.ignore_response_body:
            await response.cancel()
            return None
        body = await self._read_body(response)
        return await self._transform(body)

    async def _run_before_transport_hooks(self, init: TransportInit) -> None:
        for hook in list(self._before_transport_hooks):
            await maybe_await(hook(init, self._view))

    async def _transform(self, body: Any) -> Any:
        return await self._signal.guard(apply_response_body_transformers(body, self._view.response_body_transformers, self._view))

    def _get_engine(self) -> Engine:
        if self._engine is None:
            self._engine = load_engine()
        return self._engine

    def _build_transport_init(self) -> TransportInit:
        """
        Evaluate the headers and the body. This happens after the request interceptors, so that the changes they made are seen
        """
        headers: Dict[str, str] = {}
        for name, value in self._config.headers.items():
            value = evaluate(value, self._view)
            if value is not None:
                headers[name] = str(value)
        body = self._config.body.evaluate_producer() if self._config.body is not None else None
        if isinstance(body, FormData):
            body, headers['content-type'] = body.encode()
        return TransportInit(
            method=self._config.method,
            signal=self._signal,
            headers=headers,
            body=body,
            timeout=self._config.timeout,
            credentials=self._config.credentials,
            cors_mode=self._config.cors_mode,
        )

    async def _read_body(self, response: Response) -> Any:
        content_type = response.content_type
        if not content_type:
            self.get_logger().info('No content-type header found for response from %s', self.url)
            await response.cancel()
            return None
        kind = classify_mime_type(content_type, self._config.json_mime_types, self._config.text_mime_types)
        if kind == 'json':
            text = await self._signal.guard(response.text())
            if not text.strip():
                return None
            return json.loads(text)
        if kind == 'text':
            return await self._signal.guard(response.text())
        handle_download_progress = self._delegates.handle_download_progress
        if handle_download_progress is not None and any(
            handler.on_download_progress is not None for handler in self._config.progress_handlers
        ):
            return await handle_download_progress(response, self._signal, self._view, self.get_logger())
        return await self._signal.guard(response.blob())

    async def _read_error_body(self, response: Response) -> Any:
        try:
            return await self._read_body(response)
        except (ValueError, CharsetDetectionFailure) as error:
            self.get_logger().warn('Could not parse the body of the %d response from %s: %r', response.status_code, self.url, error)
            return None

    def _log(self, entry: LogEntry) -> None:
        self._logger.logger.info('%s', entry)


def _body_size(body: Any) -> Optional[int]:
    if isinstance(body, (bytes, bytearray)):
        return len(body)
    if isinstance(body, str):
        return len(body.encode('UTF-8'))
    return None

