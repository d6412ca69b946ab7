#!/usr/bin/env python3

"""
Declarative API definitions. An `APIConfig` names a set of endpoints sharing a base URL, headers and interceptors; the factory
turns `create_api_request('my-api', 'get-user')` into an ordinary `HttpRequest` configured from them.
"""

# standards
from dataclasses import dataclass, field
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Union


DEFAULT_API_NAME = 'default'


@dataclass(frozen=True)
class Endpoint:
    target: str
    method: str = 'GET'
    meta: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class APIConfig:
    """
    `base_url` is either a string, or a function of the `Endpoint` returning one. An API named 'default' can be used without
    naming it, see `HttpRequestFactory.create_api_request`.
    """

    name: str
    endpoints: Dict[str, Endpoint]
    base_url: Union[str, Callable[[Endpoint], str], None] = None
    headers: Mapping[str, Any] = field(default_factory=dict)
    meta: Mapping[str, Any] = field(default_factory=dict)
    response_body_transformers: List[Callable] = field(default_factory=list)
    request_interceptors: List[Callable] = field(default_factory=list)
    error_interceptors: List[Callable] = field(default_factory=list)
    retry: Optional[Any] = None


def get_endpoint_url(endpoint: Endpoint, api: APIConfig) -> str:
    """
    Absolute endpoint targets are used as they are, others are appended to the API's base URL, if any.
    """
    if re.match(r'^(https?:)?//', endpoint.target):
        return endpoint.target
    base = api.base_url(endpoint) if callable(api.base_url) else api.base_url
    return f'{base}{endpoint.target}' if base else endpoint.target
