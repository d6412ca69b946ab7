#!/usr/bin/env python3

# standards
from typing import Type

# relais
from ..sse import EventSource, RequestsEventSource, SSERequest
from .base import Feature, FeatureDelegates


class SSERequestFeature(Feature):
    """
    Adds `create_sse_request(url)` to the factory. The stream-connection primitive defaults to `RequestsEventSource`, tests and
    other transports can pass their own `EventSource` subclass.
    """

    name = 'sse-request'

    def __init__(self, event_source: Type[EventSource] = RequestsEventSource) -> None:
        self.event_source = event_source

    def get_delegates(self, factory) -> FeatureDelegates:
        def create_sse_request(url: str) -> SSERequest:
            request = SSERequest(
                factory.resolve_url(url),
                default_builders=factory.context.default_builders,
                event_source=self.event_source,
                require_feature=factory.require_feature,
                wrap_errors=factory.wrap_errors,
            )
            factory.prepare_request(request)
            return request

        return FeatureDelegates(factory={'create_sse_request': create_sse_request})
