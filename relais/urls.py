#!/usr/bin/env python3

"""
URL composition. Pure functions, no state beyond their arguments, so they can be called any number of times before the URL is
finalised to get a provisional URL.
"""

# standards
import re
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote, urlencode, urlsplit, urlunsplit

# relais
from .deferred import evaluate
from .utils import stringify


# Relative templates are resolved against this origin so that they go through the same escaping rules as absolute ones. It is then
# stripped back off.
DUMMY_ORIGIN = 'http://relais.invalid'

# Characters left untouched when re-quoting the path. Braces are kept so that unresolved placeholders stay visible, and '%' so
# that already-escaped sequences aren't escaped twice.
_PATH_SAFE_CHARS = "/:@!$&'()*+,;=-._~%{}"
_QUERY_SAFE_CHARS = "/:@!$&'()*+,;=-._~%{}?"


def is_absolute_url(url: str) -> bool:
    return url.startswith('//') or bool(re.match(r'^[a-zA-Z][a-zA-Z0-9+.\-]*://', url))


def join_base_url(base_url: Optional[str], url: str) -> str:
    """
    Joins a request URL onto a base URL. An absolute `url` always wins, and without a base the URL is made root-relative.

        >>> join_base_url('/api/v1/', 'users')
        '/api/v1/users'
        >>> join_base_url('api/v1/', '/users')
        '/api/v1/users'
        >>> join_base_url('https://a.example/api', 'https://x/y')
        'https://x/y'
    """
    if is_absolute_url(url):
        return url
    if not base_url:
        return url if url.startswith('/') else '/' + url
    joined = base_url.rstrip('/') + '/' + url.lstrip('/')
    if not is_absolute_url(joined) and not joined.startswith('/'):
        joined = '/' + joined
    return joined


def compose_url(
    template_url_history: Sequence[str],
    url_params: Mapping[str, Any],
    query_params: Mapping[str, Any],
    view: Any = None,
) -> str:
    """
    Build a URL from the tip of the template history: `{{key}}` placeholders are replaced by the path params (unknown
    placeholders are left as is), then query params are appended in order. Param values may be deferred, in which case they're
    evaluated against `view`.
    """
    url = template_url_history[-1]
    for key, raw_value in url_params.items():
        url = url.replace('{{%s}}' % key, stringify(evaluate(raw_value, view)))

    is_relative = not is_absolute_url(url)
    if is_relative:
        url = DUMMY_ORIGIN + ('' if url.startswith('/') else '/') + url
    scheme, netloc, path, query, fragment = urlsplit(url)

    pairs = list(_iter_query_pairs(query_params, view))
    if pairs:
        extra = urlencode(pairs)
        query = f'{query}&{extra}' if query else extra

    composed = urlunsplit((
        scheme,
        netloc,
        quote(path, safe=_PATH_SAFE_CHARS) or '/',
        quote(query, safe=_QUERY_SAFE_CHARS),
        quote(fragment, safe=_QUERY_SAFE_CHARS),
    ))
    if is_relative:
        return composed[len(DUMMY_ORIGIN):]
    return composed


def _iter_query_pairs(query_params: Mapping[str, Any], view: Any) -> Iterable[Tuple[str, str]]:
    for key, raw_value in query_params.items():
        value = evaluate(raw_value, view)
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            for item in value:
                yield key, stringify(item)
        else:
            yield key, stringify(value)
