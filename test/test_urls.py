#!/usr/bin/env python3

# 3rd parties
import pytest

# relais
from relais.deferred import Computed, Fixed
from relais.urls import compose_url, is_absolute_url, join_base_url


@pytest.mark.parametrize(
    'base_url, url, expected',
    [
        ('/api/v1/', 'users', '/api/v1/users'),
        ('/api/v1', '/users', '/api/v1/users'),
        ('api/v1/', 'users', '/api/v1/users'),
        ('https://example.com/api/', 'users/1', 'https://example.com/api/users/1'),
        ('https://example.com/api', 'https://x/y', 'https://x/y'),
        ('/api/v1/', 'https://x/y', 'https://x/y'),
        (None, 'users', '/users'),
        ('', '/users', '/users'),
    ],
)
def test_join_base_url(base_url, url, expected):
    assert join_base_url(base_url, url) == expected


def test_is_absolute_url():
    assert is_absolute_url('http://example.com')
    assert is_absolute_url('https://example.com/a')
    assert is_absolute_url('//example.com/a')
    assert not is_absolute_url('/a/b')
    assert not is_absolute_url('a/b')


def test_placeholders_are_replaced():
    url = compose_url(['https://example.com/users/{{id}}/posts/{{post}}'], {'id': 42, 'post': 'first'}, {})
    assert url == 'https://example.com/users/42/posts/first'


def test_unresolved_placeholders_are_kept():
    url = compose_url(['/users/{{id}}/posts/{{post}}'], {'id': 42}, {})
    assert url == '/users/42/posts/{{post}}'


def test_the_last_template_wins():
    assert compose_url(['/first', '/second/{{x}}'], {'x': 'y'}, {}) == '/second/y'


def test_query_params_keep_their_order():
    url = compose_url(['https://example.com/search'], {}, {'q': 'relais', 'page': 2, 'sort': 'desc'})
    assert url == 'https://example.com/search?q=relais&page=2&sort=desc'


def test_query_params_are_appended_to_existing_ones():
    assert compose_url(['/search?q=1'], {}, {'page': 2}) == '/search?q=1&page=2'


def test_list_query_params_repeat_the_key():
    assert compose_url(['/search'], {}, {'tag': ['a', 'b', 'c'], 'x': 1}) == '/search?tag=a&tag=b&tag=c&x=1'


def test_none_query_params_are_skipped():
    assert compose_url(['/search'], {}, {'a': None, 'b': 'x'}) == '/search?b=x'


def test_bool_query_params():
    assert compose_url(['/search'], {}, {'a': True, 'b': False}) == '/search?a=true&b=false'


def test_query_params_are_escaped():
    assert compose_url(['/search'], {}, {'q': 'a b&c'}) == '/search?q=a+b%26c'


def test_path_is_escaped():
    assert compose_url(['/files/{{name}}'], {'name': 'my file'}, {}) == '/files/my%20file'


def test_relative_urls_stay_relative():
    assert compose_url(['users'], {}, {}) == '/users'
    assert compose_url(['/users'], {}, {'a': 1}) == '/users?a=1'


def test_deferred_values_get_the_view():
    view = object()
    seen = []

    def compute_id(value):
        seen.append(value)
        return 7

    url = compose_url(['/users/{{id}}'], {'id': Computed(compute_id)}, {'x': Fixed('y')}, view)
    assert url == '/users/7?x=y'
    assert seen == [view]


def test_compose_is_pure():
    history = ['/users/{{id}}']
    url_params = {'id': 1}
    query_params = {'a': [1, 2]}
    first = compose_url(history, url_params, query_params)
    assert compose_url(history, url_params, query_params) == first
    assert history == ['/users/{{id}}']
    assert url_params == {'id': 1}
    assert query_params == {'a': [1, 2]}
