#!/usr/bin/env python3

from .api import APIConfig, Endpoint
from .config import ConfigView, ProgressHandlers
from .datastructures import (
    Blob,
    CharsetDetectionFailure,
    FeatureNotEnabled,
    FormData,
    Headers,
    HttpError,
    RelaisException,
    RequestAborted,
    RequestReusedError,
    Response,
    TransportInit,
    UnsupportedBodyError,
    URLFinalisedError,
    WrappedResult,
    WrappedSubscription,
)
from .engines import Engine, register_engine
from .factory import ConditionalDefaults, HttpRequestFactory
from .features import (
    Adapter,
    AdapterPriority,
    AdaptersFeature,
    DownloadProgressFeature,
    Feature,
    ProgressEvent,
    RequestHashFeature,
    RetryFeature,
    RetryMetaConfig,
    RetryPolicy,
    SSERequestFeature,
    UploadProgressFeature,
    exponential_backoff,
    linear_backoff,
)
from .interceptors import CONTINUE, Produce, ResponseInterceptorEntry
from .logs import LOGGER, LoggerFacade, basic_logging_config
from .request import HttpRequest
from .sse import EventSource, MessageEvent, SSERequest, SSESubscription

__all__ = [
    "APIConfig",
    "Adapter",
    "AdapterPriority",
    "AdaptersFeature",
    "Blob",
    "CONTINUE",
    "CharsetDetectionFailure",
    "ConditionalDefaults",
    "ConfigView",
    "DownloadProgressFeature",
    "Endpoint",
    "Engine",
    "EventSource",
    "Feature",
    "FeatureNotEnabled",
    "FormData",
    "Headers",
    "HttpError",
    "HttpRequest",
    "HttpRequestFactory",
    "LOGGER",
    "LoggerFacade",
    "MessageEvent",
    "Produce",
    "ProgressEvent",
    "ProgressHandlers",
    "RelaisException",
    "RequestAborted",
    "RequestHashFeature",
    "RequestReusedError",
    "Response",
    "ResponseInterceptorEntry",
    "RetryFeature",
    "RetryMetaConfig",
    "RetryPolicy",
    "SSERequest",
    "SSERequestFeature",
    "SSESubscription",
    "TransportInit",
    "URLFinalisedError",
    "UnsupportedBodyError",
    "UploadProgressFeature",
    "WrappedResult",
    "WrappedSubscription",
    "basic_logging_config",
    "exponential_backoff",
    "linear_backoff",
    "register_engine",
]
