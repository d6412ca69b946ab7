#!/usr/bin/env python3

# standards
from hashlib import md5
import json
import re
from typing import TYPE_CHECKING, Any, Optional, Sequence
from weakref import WeakKeyDictionary

# relais
from ..datastructures import Blob, ByteStream, FormData, FormFile, UnsupportedBodyError
from .base import Feature, FeatureCommands

if TYPE_CHECKING:  # pragma: no cover
    from ..request import HttpRequest


# Only headers that affect the response content. Authorization, user-agent and the like are left out.
RELEVANT_HEADERS = ('content-type', 'accept', 'accept-language', 'accept-encoding')


def deterministic_dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(',', ':'), default=str)


def _is_textual(content_type: Optional[str], textual_mime_types: Sequence[str]) -> bool:
    if not content_type:
        return True
    content_type = content_type.split(';')[0].strip().lower()
    return any(re.search(pattern, content_type) for pattern in textual_mime_types)


def canonical_body(body: Any, content_type: Optional[str], textual_mime_types: Sequence[str]) -> Any:
    """
    Returns a JSON-serialisable representation of `body` that doesn't depend on key order. Raises `UnsupportedBodyError` for
    binary bodies.
    """
    if body is None:
        return None
    if isinstance(body, (bytes, bytearray, Blob, ByteStream)) or hasattr(body, 'read'):
        raise UnsupportedBodyError('Hashing binary request bodies is not supported')
    if isinstance(body, FormData):
        if any(isinstance(value, FormFile) for _name, value in body.entries()):
            raise UnsupportedBodyError('Hashing binary request bodies is not supported')
        return sorted([name, value] for name, value in body.entries())
    if not _is_textual(content_type, textual_mime_types):
        raise UnsupportedBodyError(f'Hashing {content_type} request bodies is not supported')
    if isinstance(body, str):
        try:
            return {'json': json.loads(body)}
        except ValueError:
            return body
    return body


class RequestHashFeature(Feature):
    """
    Gives requests a `get_hash()` that identifies what the request asks for: method, URL with its params, cache-relevant
    headers, and body. JSON bodies are compared by value, so key order doesn't matter. The hash can be used as a cache key.
    """

    name = 'request-hash'

    def __init__(self) -> None:
        self._hashes: 'WeakKeyDictionary[HttpRequest, str]' = WeakKeyDictionary()

    def apply(self, factory, commands: FeatureCommands) -> None:
        commands.after_request_created(self._install)

    def _install(self, request: 'HttpRequest') -> None:
        request.set_hash_function(lambda: self.compute_hash(request))

    def compute_hash(self, request: 'HttpRequest') -> str:
        cached = self._hashes.get(request)
        if cached is not None:
            return cached
        view = request.config
        headers = view.headers
        content_type = headers.get('content-type')
        key_components = {
            'method': view.method,
            'url': request.url,
            'body': canonical_body(view.body, content_type, view.text_mime_types + view.json_mime_types),
            'relevant_headers': {name: headers[name] for name in RELEVANT_HEADERS if name in headers},
        }
        hashed = md5(deterministic_dumps(key_components).encode('UTF-8')).hexdigest()[:16]
        self._hashes[request] = hashed
        return hashed
