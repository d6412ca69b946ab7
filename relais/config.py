#!/usr/bin/env python3

# standards
from collections.abc import Mapping
from dataclasses import dataclass, field
import re
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

# relais
from .deferred import Computed, Deferred, evaluate
from .logs import LOGGER


DEFAULT_ACCEPTED_MIME_TYPES = ('*/*',)

DEFAULT_JSON_MIME_TYPES = (r'^application/(?:.+\+)?json$',)

DEFAULT_TEXT_MIME_TYPES = (
    r'^text/.*$',
    r'^application/.*\+xml$',
    r'^image/.*\+xml$',
    r'^application/javascript$',
    r'^application/xml$',
    r'application/x-www-form-urlencoded',
)


@dataclass
class ProgressHandlers:
    """
    One registered set of progress callbacks. Either callback may be omitted. `throttle_ms` is the minimum interval between two
    events; when several handlers are registered, the smallest interval wins.
    """

    on_upload_progress: Optional[Callable] = None
    on_download_progress: Optional[Callable] = None
    throttle_ms: int = 0


@dataclass(eq=False)
class RequestConfig:
    """
    The mutable record describing one request or stream attempt. Only the builder methods of `HttpRequest` and `SSERequest`, and
    the interceptor controls, write to it. Everything else reads it through a `ConfigView`.
    """

    method: str = 'GET'
    template_url_history: List[str] = field(default_factory=list)
    url_params: Dict[str, Deferred] = field(default_factory=dict)
    query_params: Dict[str, Deferred] = field(default_factory=dict)
    headers: Dict[str, Deferred] = field(default_factory=dict)
    body: Optional[Computed] = None
    timeout: int = 0
    credentials: str = 'same-origin'
    cors_mode: str = 'cors'
    accepted_mime_types: List[str] = field(default_factory=lambda: list(DEFAULT_ACCEPTED_MIME_TYPES))
    json_mime_types: List[str] = field(default_factory=lambda: list(DEFAULT_JSON_MIME_TYPES))
    text_mime_types: List[str] = field(default_factory=lambda: list(DEFAULT_TEXT_MIME_TYPES))
    meta: Dict[str, Any] = field(default_factory=dict)
    request_interceptors: List[Callable] = field(default_factory=list)
    response_interceptors: List[Any] = field(default_factory=list)
    error_interceptors: List[Callable] = field(default_factory=list)
    response_body_transformers: List[Callable] = field(default_factory=list)
    progress_handlers: List[ProgressHandlers] = field(default_factory=list)
    log_level: str = 'error'
    logger: Any = None
    ignore_response_body: bool = False
    retry: Any = None
    final_url: Optional[str] = None

    @property
    def template_url(self) -> str:
        return self.template_url_history[-1] if self.template_url_history else ''

    @property
    def is_finalised(self) -> bool:
        return self.final_url is not None


class _EvaluatingMapping(Mapping):
    """
    Read-only mapping that evaluates deferred values on every read, passing in the view they belong to.
    """

    def __init__(self, source: Dict[str, Deferred], view: 'ConfigView') -> None:
        self._source = source
        self._view = view

    def __getitem__(self, key: str) -> Any:
        return evaluate(self._source[key], self._view)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._source))

    def __len__(self) -> int:
        return len(self._source)


class HeadersView(_EvaluatingMapping):

    def __getitem__(self, key: str) -> Any:
        return super().__getitem__(key.lower())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._source


class ConfigView:
    """
    Read-only projection of a `RequestConfig`. This is not a copy: changes made to the config through the builders or the
    interceptor controls are visible here. There are no setters.
    """

    def __init__(self, config: RequestConfig) -> None:
        self._config = config

    @property
    def method(self) -> str:
        return self._config.method

    @property
    def template_url(self) -> str:
        return self._config.template_url

    @property
    def template_url_history(self) -> Tuple[str, ...]:
        return tuple(self._config.template_url_history)

    @property
    def url_params(self) -> Mapping:
        return _EvaluatingMapping(self._config.url_params, self)

    @property
    def query_params(self) -> Mapping:
        return _EvaluatingMapping(self._config.query_params, self)

    @property
    def headers(self) -> HeadersView:
        return HeadersView(self._config.headers, self)

    @property
    def body(self) -> Any:
        if self._config.body is None:
            return None
        try:
            return self._config.body.evaluate_producer()
        except Exception as error:  # pylint: disable=broad-except
            # reading the view is never fatal, the producer will run again, and raise for real, when the request is sent
            LOGGER.warning('Body producer raised %r while reading the config view', error)
            return None

    @property
    def timeout(self) -> int:
        return self._config.timeout

    @property
    def credentials(self) -> str:
        return self._config.credentials

    @property
    def cors_mode(self) -> str:
        return self._config.cors_mode

    @property
    def accepted_mime_types(self) -> Tuple[str, ...]:
        return tuple(self._config.accepted_mime_types)

    @property
    def json_mime_types(self) -> Tuple[str, ...]:
        return tuple(self._config.json_mime_types)

    @property
    def text_mime_types(self) -> Tuple[str, ...]:
        return tuple(self._config.text_mime_types)

    @property
    def meta(self) -> Mapping:
        return MappingProxyType(self._config.meta)

    @property
    def request_interceptors(self) -> Tuple[Callable, ...]:
        return tuple(self._config.request_interceptors)

    @property
    def response_interceptors(self) -> Tuple[Any, ...]:
        return tuple(self._config.response_interceptors)

    @property
    def error_interceptors(self) -> Tuple[Callable, ...]:
        return tuple(self._config.error_interceptors)

    @property
    def response_body_transformers(self) -> Tuple[Callable, ...]:
        return tuple(self._config.response_body_transformers)

    @property
    def progress_handlers(self) -> Tuple[ProgressHandlers, ...]:
        return tuple(self._config.progress_handlers)

    @property
    def log_level(self) -> str:
        return self._config.log_level

    @property
    def ignore_response_body(self) -> bool:
        return self._config.ignore_response_body

    @property
    def retry(self) -> Any:
        return self._config.retry

    @property
    def is_finalised(self) -> bool:
        return self._config.is_finalised

    @property
    def final_url(self) -> Optional[str]:
        if not self._config.is_finalised:
            LOGGER.warning('final_url read before the URL was finalised, returning None')
            return None
        return self._config.final_url

    def __repr__(self) -> str:
        return f'ConfigView({self.method} {self.template_url!r})'


def classify_mime_type(
    content_type: str,
    json_mime_types: Sequence[str] = DEFAULT_JSON_MIME_TYPES,
    text_mime_types: Sequence[str] = DEFAULT_TEXT_MIME_TYPES,
) -> Optional[str]:
    """
    Returns 'json', 'text', or None if the content type matches neither list. The JSON patterns are tried first.
    """
    content_type = content_type.split(';')[0].strip().lower()
    if any(re.search(pattern, content_type) for pattern in json_mime_types):
        return 'json'
    if any(re.search(pattern, content_type) for pattern in text_mime_types):
        return 'text'
    return None
