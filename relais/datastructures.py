#!/usr/bin/env python3

# standards
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
import json
import re
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

# 3rd parties
import chardet
from urllib3.filepost import encode_multipart_formdata

if TYPE_CHECKING:  # pragma: no cover
    from .signals import AbortSignal


ABORTED_MESSAGE = 'Request aborted'


class RelaisException(Exception):
    pass


class HttpError(RelaisException):
    """
    The one error type that `execute()` surfaces for failed requests. `code` is the HTTP status for non-2xx responses, or -1 for
    aborts, timeouts and transport-level failures. For the latter, `context` holds the original exception; for HTTP failures it
    holds the parsed response body.
    """

    def __init__(self, code: int, message: str, context: Any = None) -> None:
        super().__init__(f'{code} {message}')
        self.code = code
        self.message = message
        self.context = context

    @property
    def is_aborted(self) -> bool:
        return self.code == -1 and self.message == ABORTED_MESSAGE


class RequestAborted(RelaisException):
    """
    Raised within the engine, and by transports, when the request's abort signal fires. `execute()` turns it into an `HttpError`
    with code -1.
    """


class URLFinalisedError(RelaisException):
    pass


class RequestReusedError(RelaisException):
    pass


class FeatureNotEnabled(RelaisException):
    pass


class UnsupportedBodyError(RelaisException):
    pass


class CharsetDetectionFailure(RelaisException):
    pass


class TransportError(RelaisException):
    pass


class ConnectionError(TransportError):  # pylint: disable=redefined-builtin
    pass


class TransportTimeout(TransportError):
    pass


class Headers:
    """
    A headers dict that uses case-insensitive keys and allows multiple values per key (for e.g. repeated "Set-Cookie" headers).

    Note that we deliberately don't inherit from `abc.Mapping` or similar because the interface isn't _quite_ that of a dict,
    because some methods return strings, and some return lists of strings.
    """

    _dict: Dict[str, List[Tuple[str, str]]]

    def __init__(self, base: Optional[Union['Headers', Dict[str, str], Iterable[Tuple[str, str]]]] = None) -> None:
        self._dict = {}
        if base:
            pairs = base.items() if isinstance(base, (Headers, dict)) else base
            for key, value in pairs:
                self.add(key, value)

    def __bool__(self) -> bool:
        return bool(self._dict)

    def __contains__(self, key: str) -> bool:
        return key.lower() in self._dict

    def __getitem__(self, key: str) -> str:
        value = self.get(key)
        if value is None:
            raise KeyError(key)
        return value

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value_list = self.get_all(key)
        if not value_list:
            return default
        return ', '.join(value_list)

    def get_all(self, key: str, default: Sequence[str] = ()) -> Sequence[str]:
        value_list = self._dict.get(key.lower())
        if value_list is None:
            return default
        return [value for _raw_key_unused, value in value_list]

    def add(self, key: str, value: str) -> None:
        self._dict.setdefault(key.lower(), []).append((key, value))

    __setitem__ = add

    def keys(self) -> Iterator[str]:
        for value_list in self._dict.values():
            yield value_list[0][0]

    __iter__ = keys

    def items(self, normalise_keys: bool = False) -> Iterator[Tuple[str, str]]:
        for normalised_key, value_list in self._dict.items():
            for raw_key, value in value_list:
                yield (normalised_key if normalise_keys else raw_key, value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return False
        return sorted(self.items(normalise_keys=True)) == sorted(other.items(normalise_keys=True))

    def __repr__(self) -> str:
        return 'Headers({%s})' % ', '.join(f'{key!r}: {value!r}' for key, value in self.items())


@dataclass
class Blob:
    """
    Binary response body, for content types that are neither JSON nor text.
    """

    data: bytes
    content_type: str = 'application/octet-stream'

    def __len__(self) -> int:
        return len(self.data)


@dataclass
class FormFile:
    data: bytes
    filename: str
    content_type: Optional[str] = None


class FormData:
    """
    Multipart form body. Entries keep their insertion order, and names may repeat.
    """

    def __init__(self) -> None:
        self._entries: List[Tuple[str, Union[str, FormFile]]] = []

    def append(
        self,
        name: str,
        value: Union[str, bytes],
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> None:
        if isinstance(value, bytes) or filename is not None:
            data = value if isinstance(value, bytes) else value.encode('UTF-8')
            self._entries.append((name, FormFile(data, filename or name, content_type)))
        else:
            self._entries.append((name, value))

    def entries(self) -> List[Tuple[str, Union[str, FormFile]]]:
        return list(self._entries)

    @property
    def has_files(self) -> bool:
        return any(isinstance(value, FormFile) for _name, value in self._entries)

    def encode(self) -> Tuple[bytes, str]:
        """
        Returns the multipart-encoded body, and the matching content-type header value (which includes the boundary).
        """
        fields: List[Tuple[str, Any]] = []
        for name, value in self._entries:
            if isinstance(value, FormFile):
                fields.append((name, (value.filename, value.data, value.content_type or 'application/octet-stream')))
            else:
                fields.append((name, value))
        return encode_multipart_formdata(fields)

    def __repr__(self) -> str:
        return 'FormData(%r)' % self._entries


class ByteStream(ABC):
    """
    The readable side of a response body. Transports provide their own implementation.
    """

    @abstractmethod
    async def read_chunk(self) -> Optional[bytes]:
        """
        Return the next chunk of bytes, or `None` once the body has been fully read.
        """

    async def cancel(self) -> None:  # pragma: no cover
        pass


class BytesStream(ByteStream):

    def __init__(self, chunks: Iterable[bytes] = ()) -> None:
        self._chunks = deque(chunks)
        self.cancelled = False

    async def read_chunk(self) -> Optional[bytes]:
        if self.cancelled or not self._chunks:
            return None
        return self._chunks.popleft()

    async def cancel(self) -> None:
        self.cancelled = True
        self._chunks.clear()


@dataclass
class Response:
    """
    What transports return. Only the body is read asynchronously, so that it can be streamed.
    """

    status_code: int
    reason: Optional[str]
    headers: Headers
    body: ByteStream
    url: str = ''
    _content: Optional[bytes] = field(default=None, init=False, repr=False)

    @classmethod
    def from_bytes(
        cls,
        content: Union[bytes, str] = b'',
        status_code: int = 200,
        reason: Optional[str] = 'OK',
        headers: Optional[Dict[str, str]] = None,
        url: str = '',
        chunk_size: Optional[int] = None,
    ) -> 'Response':
        if isinstance(content, str):
            content = content.encode('UTF-8')
        if chunk_size:
            chunks = [content[pos : pos + chunk_size] for pos in range(0, len(content), chunk_size)]
        else:
            chunks = [content] if content else []
        return cls(
            status_code=status_code,
            reason=reason,
            headers=Headers(headers),
            body=BytesStream(chunks),
            url=url,
        )

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def content_type(self) -> Optional[str]:
        value = self.headers.get('Content-Type')
        if not value:
            return None
        return value.split(';')[0].strip().lower()

    @property
    def content_length(self) -> Optional[int]:
        value = self.headers.get('Content-Length')
        if value is None or not value.strip().isdigit():
            return None
        return int(value)

    async def read_chunk(self) -> Optional[bytes]:
        return await self.body.read_chunk()

    async def cancel(self) -> None:
        await self.body.cancel()

    async def read(self) -> bytes:
        if self._content is None:
            chunks = []
            while True:
                chunk = await self.body.read_chunk()
                if chunk is None:
                    break
                chunks.append(chunk)
            self._content = b''.join(chunks)
        return self._content

    async def text(self) -> str:
        content = await self.read()
        return content.decode(self._detect_encoding(content))

    async def json(self, **kwargs) -> Any:
        return json.loads(await self.text(), **kwargs)

    async def blob(self) -> Blob:
        return Blob(await self.read(), self.content_type or 'application/octet-stream')

    def _detect_encoding(self, content: bytes) -> str:
        charset_match = re.search(r';\s*charset=["\']?([\w\-]+)', self.headers.get('Content-Type') or '', flags=re.I)
        if charset_match:
            return charset_match.group(1)
        if not content:
            return 'UTF-8'
        encoding = chardet.detect(content)['encoding']
        if encoding is None:
            raise CharsetDetectionFailure()
        return encoding


Transport = Callable[[str, 'TransportInit'], Awaitable[Response]]


@dataclass
class TransportInit:
    """
    Everything the transport needs besides the URL. Pre-transport hooks receive this object and may modify it, including setting
    `transport` to swap in a different transport function for this one request.
    """

    method: str
    signal: 'AbortSignal'
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    timeout: int = 0
    credentials: str = 'same-origin'
    cors_mode: str = 'cors'
    transport: Optional[Transport] = None


@dataclass
class WrappedResult:
    """
    What `execute()` returns in wrap mode. `error is None` tells a success, since `response` is legitimately `None` for a 204, an
    ignored body or an empty JSON body.
    """

    response: Any = None
    error: Optional[HttpError] = None


@dataclass
class WrappedSubscription:
    subscription: Any = None
    error: Optional[HttpError] = None
