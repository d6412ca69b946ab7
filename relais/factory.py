#!/usr/bin/env python3

# standards
import logging
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Any, Callable, Dict, Optional, Union

# relais
from .api import DEFAULT_API_NAME, APIConfig, get_endpoint_url
from .config import ConfigView, ProgressHandlers
from .datastructures import FeatureNotEnabled
from .delegates import RequestDelegates
from .engines import EngineSpec, load_engine
from .features.base import FactoryContext, Feature, FeatureCommands
from .logs import LoggerFacade, as_logger_facade
from .request import BaseRequest, HttpRequest
from .urls import join_base_url


# Factory methods contributed by features, and the feature that contributes each.
FACTORY_DELEGATE_FEATURES = {
    'create_sse_request': 'sse-request',
    'with_adapter': 'adapters',
    'detach_adapter': 'adapters',
    'has_adapter': 'adapters',
    'get_attached_adapters': 'adapters',
}


def default_builder(operation: str, *args, **kwargs) -> Callable[[BaseRequest, ConfigView], None]:
    """
    Returns a default builder that calls the request builder named `operation`. Requests that don't have that builder (e.g.
    `with_accept` on an SSE request) are left alone.
    """

    def apply_default(request: BaseRequest, view: ConfigView) -> None:
        builder = getattr(request, operation, None)
        if builder is not None:
            builder(*args, **kwargs)

    apply_default.__name__ = f'default_{operation}'
    return apply_default


class DefaultBuilders(ABC):
    """
    The request builders that can be set as factory defaults. Subclasses decide what to do with each default builder, see
    `_add_default`.
    """

    @abstractmethod
    def _add_default(self, builder: Callable, interceptor: Optional[Callable] = None):
        raise NotImplementedError

    def with_header(self, name: str, value: Any):
        return self._add_default(default_builder('with_header', name, value))

    def with_headers(self, headers: Dict[str, Any]):
        return self._add_default(default_builder('with_headers', dict(headers)))

    def with_accept(self, *mime_types: str):
        return self._add_default(default_builder('with_accept', *mime_types))

    def with_credentials_policy(self, policy: str):
        return self._add_default(default_builder('with_credentials_policy', policy))

    def with_log_level(self, level: str):
        return self._add_default(default_builder('with_log_level', level))

    def with_logger(self, logger: Union[LoggerFacade, logging.Logger]):
        return self._add_default(default_builder('with_logger', logger))

    def with_timeout(self, timeout_ms: int):
        return self._add_default(default_builder('with_timeout', timeout_ms))

    def with_meta(self, key_or_mapping: Any, value: Any = None):
        return self._add_default(default_builder('with_meta', key_or_mapping, value))

    def with_query_params(self, params: Dict[str, Any]):
        return self._add_default(default_builder('with_query_params', dict(params)))

    def with_request_interceptors(self, *interceptors: Callable):
        # one builder per interceptor, so that `delete_request_interceptor` can remove them one by one
        result = self
        for interceptor in interceptors:
            result = self._add_default(default_builder('with_request_interceptors', interceptor), interceptor)
        return result

    def with_response_interceptors(self, *interceptors: Callable):
        return self._add_default(default_builder('with_response_interceptors', *interceptors))

    def with_error_interceptors(self, *interceptors: Callable):
        return self._add_default(default_builder('with_error_interceptors', *interceptors))

    def with_response_body_transformers(self, *transformers: Callable):
        return self._add_default(default_builder('with_response_body_transformers', *transformers))

    def with_progress_handlers(self, *handlers: ProgressHandlers):
        return self._add_default(default_builder('with_progress_handlers', *handlers))

    def with_retry(self, policy: Any):
        return self._add_default(default_builder('with_retry', policy))

    def with_json_mime_types(self, *patterns: str):
        return self._add_default(default_builder('with_json_mime_types', *patterns))

    def with_text_mime_types(self, *patterns: str):
        return self._add_default(default_builder('with_text_mime_types', *patterns))


class ConditionalDefaults(DefaultBuilders):
    """
    Returned by `HttpRequestFactory.when(predicate)`. Defaults set through this object only apply to requests for which
    `predicate(config_view)` is true, evaluated when the request is executed. Call `always()` to get back to the factory.

        factory.when(lambda config: config.meta.get('requires_auth')) \\
            .with_header('Authorization', get_token) \\
            .always() \\
            .with_header('X-Powered-By', 'relais')
    """

    def __init__(self, factory: 'HttpRequestFactory', predicate: Callable[[ConfigView], bool]) -> None:
        self._factory = factory
        self._predicate = predicate

    def _add_default(self, builder: Callable, interceptor: Optional[Callable] = None) -> 'ConditionalDefaults':
        predicate = self._predicate

        def apply_if(request: BaseRequest, view: ConfigView) -> None:
            if predicate(view):
                builder(request, view)

        self._factory._add_default(apply_if, interceptor)  # pylint: disable=protected-access
        return self

    def when(self, predicate: Callable[[ConfigView], bool]) -> 'ConditionalDefaults':
        return ConditionalDefaults(self._factory, predicate)

    def always(self) -> 'HttpRequestFactory':
        return self._factory


class HttpRequestFactory(DefaultBuilders):
    """
    Creates requests that share defaults (headers, interceptors, timeouts, ...), an engine, and the features plugged in with
    `use()`. Factory-level `with_*` calls don't configure the factory itself, they register default builders that will be applied to
    every request the factory creates, when that request is executed.
    """

    def __init__(self, engine: EngineSpec = 'requests') -> None:
        self.engine = load_engine(engine)
        self.context = FactoryContext()
        self.features: Dict[str, Feature] = {}
        self.request_delegates = RequestDelegates()
        self.factory_delegates: Dict[str, Callable] = {}
        self.api_configs: Dict[str, APIConfig] = {}
        self.base_url: Optional[str] = None
        self.wrap_errors = False
        self.log_level = 'error'
        self._logger = LoggerFacade()
        self._commands = FeatureCommands(self.context)
        self._interceptor_builders: Dict[Callable, Callable] = {}

    def __getattr__(self, name: str) -> Any:
        # only reached for names that aren't regular attributes
        factory_delegates = self.__dict__.get('factory_delegates', {})
        if name in factory_delegates:
            return factory_delegates[name]
        if name in FACTORY_DELEGATE_FEATURES:
            raise FeatureNotEnabled(
                f'{name}() needs the {FACTORY_DELEGATE_FEATURES[name]!r} feature, enable it with factory.use(...)'
            )
        raise AttributeError(name)

    def __repr__(self) -> str:
        return f'HttpRequestFactory(engine={self.engine.id!r}, features={list(self.features)!r})'

    @property
    def logger(self) -> LoggerFacade:
        return self._logger.with_minimum_level(self.log_level)

    # Features

    def use(self, feature: Feature) -> 'HttpRequestFactory':
        if feature.name in self.features:
            raise ValueError(f'Feature {feature.name!r} is already in use')
        self.features[feature.name] = feature
        feature.apply(self, self._commands)
        delegates = feature.get_delegates(self)
        self.request_delegates.merge(delegates.request, feature.priority)
        self.factory_delegates.update(delegates.factory)
        self.logger.debug('Feature %r enabled', feature.name)
        return self

    def require_feature(self, name: str) -> None:
        if name not in self.features:
            raise FeatureNotEnabled(f'Feature {name!r} is not enabled, enable it with factory.use(...)')

    # Defaults

    def _add_default(self, builder: Callable, interceptor: Optional[Callable] = None) -> 'HttpRequestFactory':
        self._commands.add_request_defaults(builder)
        if interceptor is not None:
            self._interceptor_builders[interceptor] = builder
        return self

    def when(self, predicate: Callable[[ConfigView], bool]) -> ConditionalDefaults:
        return ConditionalDefaults(self, predicate)

    def always(self) -> 'HttpRequestFactory':
        return self

    def delete_request_interceptor(self, interceptor: Callable) -> 'HttpRequestFactory':
        builder = self._interceptor_builders.pop(interceptor, None)
        if builder is None:
            raise ValueError(f'{interceptor!r} is not a default request interceptor of this factory')
        self._commands.remove_request_defaults(builder)
        return self

    def with_log_level(self, level: str) -> 'HttpRequestFactory':
        """
        Sets the log level of the factory itself, and of every request it creates
        """
        self.log_level = level
        return super().with_log_level(level)

    def with_logger(self, logger: Union[LoggerFacade, logging.Logger]) -> 'HttpRequestFactory':
        self._logger = as_logger_facade(logger)
        return self

    def with_base_url(self, base_url: str) -> 'HttpRequestFactory':
        self.base_url = base_url
        return self

    def with_wrapped_response_error(self) -> 'HttpRequestFactory':
        """
        Switch to wrap mode: `execute()` no longer raises `HttpError`, but returns a `WrappedResult` (or a `WrappedSubscription`
        for SSE requests) holding either the response or the error.
        """
        self.wrap_errors = True
        return self

    def with_api_config(self, *apis: APIConfig) -> 'HttpRequestFactory':
        for api in apis:
            self.api_configs[api.name] = api
        return self

    # Requests

    def resolve_url(self, url: str) -> str:
        if self.base_url is None:
            return url
        return join_base_url(self.base_url, url)

    def prepare_request(self, request: BaseRequest) -> None:
        """
        Called on every new request, SSE requests included
        """
        request.with_logger(self._logger)
        for hook in list(self.context.after_request_created_hooks):
            hook(request)

    def create_request(self, url: str, method: str = 'GET') -> HttpRequest:
        request = HttpRequest(
            self.resolve_url(url),
            method,
            default_builders=self.context.default_builders,
            delegates=self.request_delegates,
            engine=self.engine,
            before_transport_hooks=self.context.before_transport_hooks,
            require_feature=self.require_feature,
            wrap_errors=self.wrap_errors,
        )
        self.prepare_request(request)
        return request

    def create_get_request(self, url: str) -> HttpRequest:
        return self.create_request(url, 'GET')

    def create_post_request(self, url: str) -> HttpRequest:
        return self.create_request(url, 'POST')

    def create_put_request(self, url: str) -> HttpRequest:
        return self.create_request(url, 'PUT')

    def create_delete_request(self, url: str) -> HttpRequest:
        return self.create_request(url, 'DELETE')

    def create_patch_request(self, url: str) -> HttpRequest:
        return self.create_request(url, 'PATCH')

    def create_head_request(self, url: str) -> HttpRequest:
        return self.create_request(url, 'HEAD')

    def create_trace_request(self, url: str) -> HttpRequest:
        return self.create_request(url, 'TRACE')

    def create_api_request(self, *names: str) -> HttpRequest:
        """
        `create_api_request(api_name, endpoint_name)`, or `create_api_request(endpoint_name)` for the API named 'default'.

        The request's meta gets an 'api' entry describing the API and the endpoint, merged with the API's and the endpoint's own
        meta. 'api' is reserved: API or endpoint meta can't override it.
        """
        if len(names) == 1:
            api_name, endpoint_name = DEFAULT_API_NAME, names[0]
        elif len(names) == 2:
            api_name, endpoint_name = names
        else:
            raise TypeError(f'create_api_request takes 1 or 2 names, got {len(names)}')
        self.logger.trace('Creating API request %s %s', api_name, endpoint_name)
        api = self.api_configs.get(api_name)
        endpoint = api.endpoints.get(endpoint_name) if api is not None else None
        if endpoint is None:
            raise ValueError(f'Endpoint {endpoint_name!r} not found in API {api_name!r}')

        meta: Dict[str, Any] = {}
        for extra_meta in (api.meta, endpoint.meta):
            if 'api' in extra_meta:
                self.logger.error("Unable to merge meta: 'api' is a reserved meta key, ignoring it")
            meta.update((key, value) for key, value in extra_meta.items() if key != 'api')
        meta['api'] = MappingProxyType({
            'name': api.name,
            'base_url': api.base_url,
            'endpoint': endpoint,
            'endpoint_name': endpoint_name,
        })

        request = self.create_request(get_endpoint_url(endpoint, api), endpoint.method)
        request.with_meta(meta).with_headers(api.headers)
        if api.response_body_transformers:
            request.with_response_body_transformers(*api.response_body_transformers)
        if api.request_interceptors:
            request.with_request_interceptors(*api.request_interceptors)
        if api.error_interceptors:
            request.with_error_interceptors(*api.error_interceptors)
        if api.retry is not None:
            request.with_retry(api.retry)
        return request
