#!/usr/bin/env python3

"""
Interceptor plumbing shared by `HttpRequest` and `SSERequest`.

Request and response interceptors say whether they take over by returning an outcome: `CONTINUE` (or `None`) hands over to the
next interceptor, `Produce(value)` ends the chain with `value`, even if `value` is itself `None`. Any other return value is
shorthand for `Produce(value)`.
"""

# standards
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Union

# relais
from .config import ConfigView, RequestConfig
from .datastructures import HttpError, URLFinalisedError
from .deferred import Computed, deferred
from .logs import LoggerFacade
from .signals import AbortSignal
from .urls import compose_url
from .utils import maybe_await


class _Continue:

    def __repr__(self) -> str:
        return 'CONTINUE'


CONTINUE = _Continue()


@dataclass(frozen=True)
class Produce:
    value: Any


Outcome = Union[_Continue, Produce]


def as_outcome(result: Any) -> Outcome:
    if result is None or result is CONTINUE:
        return CONTINUE
    if isinstance(result, Produce):
        return result
    return Produce(result)


@dataclass(frozen=True)
class ResponseInterceptorEntry:
    """
    A response interceptor, with a flag saying whether the value it produces skips the response body transformers. Plain
    callables registered as response interceptors get wrapped in an entry with the flag off.
    """

    interceptor: Callable
    skip_transformers_on_return: bool = False

    def __call__(self, *args, **kwargs):
        return self.interceptor(*args, **kwargs)


def as_response_interceptor_entry(entry: Union[Callable, ResponseInterceptorEntry]) -> ResponseInterceptorEntry:
    if isinstance(entry, ResponseInterceptorEntry):
        return entry
    return ResponseInterceptorEntry(entry)


def finalise_url(config: RequestConfig, view: ConfigView) -> str:
    """
    Compute the final URL, once. Later calls return the same string.
    """
    if config.final_url is None:
        config.final_url = compose_url(config.template_url_history, config.url_params, config.query_params, view)
    return config.final_url


def provisional_url(config: RequestConfig, view: ConfigView) -> str:
    if config.final_url is not None:
        return config.final_url
    return compose_url(config.template_url_history, config.url_params, config.query_params, view)


def _deferred_dict(params: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: deferred(value) for key, value in params.items()}


class _Controls:

    def __init__(self, logger: LoggerFacade) -> None:
        self._logger = logger
        self.transformers_skipped = False

    def get_logger(self) -> LoggerFacade:
        return self._logger

    def skip_transformers(self) -> None:
        self.transformers_skipped = True


class ResponseControls(_Controls):
    pass


class RequestControls(_Controls):
    """
    What request interceptors may do to the request, besides reading the config view. Everything that changes the URL, the
    headers or the body raises `URLFinalisedError` once the URL has been finalised.
    """

    def __init__(
        self,
        config: RequestConfig,
        view: ConfigView,
        signal: AbortSignal,
        logger: LoggerFacade,
        get_hash: Callable[[], str],
    ) -> None:
        super().__init__(logger)
        self._config = config
        self._view = view
        self._signal = signal
        self._get_hash = get_hash

    def _ensure_not_finalised(self, operation: str) -> None:
        if self._config.is_finalised:
            raise URLFinalisedError(f"Can't {operation}, the URL was already finalised as {self._config.final_url!r}")

    def abort(self) -> None:
        self._signal.abort('aborted by request interceptor')

    def replace_url(self, url: str, url_params: Optional[Mapping[str, Any]] = None) -> None:
        self._ensure_not_finalised('replace the URL')
        self._config.template_url_history.append(url)
        if url_params is not None:
            self._config.url_params = _deferred_dict(url_params)

    def replace_url_params(self, url_params: Mapping[str, Any]) -> None:
        self._ensure_not_finalised('replace the URL params')
        self._config.url_params = _deferred_dict(url_params)

    def update_query_params(self, query_params: Mapping[str, Any]) -> None:
        self._ensure_not_finalised('update the query params')
        for key, value in query_params.items():
            if value is None:
                self._config.query_params.pop(key, None)
            else:
                self._config.query_params[key] = deferred(value)

    def get_provisional_url(self) -> str:
        return provisional_url(self._config, self._view)

    def update_headers(self, headers: Mapping[str, Any]) -> None:
        self._ensure_not_finalised('update the headers')
        for name, value in headers.items():
            if value is None:
                self._config.headers.pop(name.lower(), None)
            else:
                self._config.headers[name.lower()] = deferred(value)

    def finalise_url(self) -> str:
        return finalise_url(self._config, self._view)

    def replace_body(self, body: Any) -> None:
        self._ensure_not_finalised('replace the body')
        self._config.body = Computed(body if callable(body) else (lambda: body))

    def get_hash(self) -> str:
        return self._get_hash()


async def run_request_interceptors(
    interceptors: Iterable[Callable],
    view: ConfigView,
    controls: RequestControls,
    signal: AbortSignal,
) -> Outcome:
    for interceptor in interceptors:
        outcome = as_outcome(await maybe_await(interceptor(view, controls)))
        signal.raise_if_aborted()
        if isinstance(outcome, Produce):
            return outcome
    return CONTINUE


async def run_response_interceptors(
    entries: Iterable[Union[Callable, ResponseInterceptorEntry]],
    response: Any,
    view: ConfigView,
    controls: ResponseControls,
) -> Outcome:
    for raw_entry in entries:
        entry = as_response_interceptor_entry(raw_entry)
        outcome = as_outcome(await maybe_await(entry.interceptor(response, view, controls)))
        if isinstance(outcome, Produce):
            if entry.skip_transformers_on_return:
                controls.skip_transformers()
            return outcome
    return CONTINUE


async def apply_response_body_transformers(value: Any, transformers: Sequence[Callable], view: ConfigView) -> Any:
    """
    Run `value` through the transformers, in order, each one's output feeding the next.
    """
    for transformer in transformers:
        value = await maybe_await(transformer(value, view))
    return value


async def run_error_interceptors(error: HttpError, interceptors: Sequence[Callable]) -> bool:
    """
    Returns True if one of the interceptors returned True, which stops the chain. The error is still raised by the caller either
    way.
    """
    for interceptor in interceptors:
        if await maybe_await(interceptor(error)) is True:
            return True
    return False
