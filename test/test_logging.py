#!/usr/bin/env python3

# standards
import logging
import re

# 3rd parties
import pytest

# relais
from relais import HttpError, HttpRequestFactory, LoggerFacade
from relais.datastructures import ConnectionError  # pylint: disable=redefined-builtin
from relais.logs import LogEntry
from .utils import DummyEngine, json_response


def test_log_entry_format():
    assert str(LogEntry('GET', 'https://example.com/a', engine_short_code='rq')) == '[rq]     https://example.com/a'
    assert str(LogEntry('DELETE', 'https://example.com/a', status_code=204)) == '         https://example.com/a [DELETE] -> 204'
    assert str(LogEntry('POST', '/a', body_size=12, engine_short_code='rq')) == '[rq]     /a [POST 12 bytes]'
    assert str(LogEntry('GET', '/a', short_circuited=True)) == '[interc] /a'


@pytest.mark.asyncio
async def test_basic_logging(captured_logs):
    factory = HttpRequestFactory(DummyEngine(lambda url, init: json_response({})))
    await factory.create_get_request('https://example.com/hello').execute()
    assert re.search(r'^\[dm\]     https://example.com/hello -> 200\n$', captured_logs())
    await factory.create_post_request('https://example.com/hello').with_json_body({'a': 1}).execute()
    assert re.search(r'^\[dm\]     https://example.com/hello \[POST 8 bytes\] -> 200\n$', captured_logs())


@pytest.mark.asyncio
async def test_logging_short_circuits(captured_logs):
    factory = HttpRequestFactory(DummyEngine())
    await factory.create_get_request('https://example.com/cached').with_request_interceptors(lambda view, controls: 'cached').execute()
    assert re.search(r'^\[interc\] https://example.com/cached\n$', captured_logs())


@pytest.mark.asyncio
async def test_logging_transport_errors(captured_logs):
    factory = HttpRequestFactory(DummyEngine(ConnectionError('connection refused')))
    with pytest.raises(HttpError):
        await factory.create_get_request('https://example.com/down').execute()
    assert re.search(r'^\[dm\]     https://example.com/down !! connection refused\n', captured_logs(), flags=re.M)


@pytest.mark.asyncio
async def test_request_log_level_filters_messages(captured_logs):
    logger = logging.getLogger('relais.test')
    factory = HttpRequestFactory(DummyEngine()).with_log_level('info').with_logger(logger)
    seen_levels = []

    def interceptor(view, controls):
        seen_levels.append(controls.get_logger().minimum_level)
        controls.get_logger().debug('dropped')
        controls.get_logger().info('kept')

    await factory.create_get_request('https://example.com/').with_request_interceptors(interceptor).execute()
    assert seen_levels == ['info']
    logs = captured_logs()
    assert 'kept' in logs
    assert 'dropped' not in logs


def test_logger_facade_levels():
    facade = LoggerFacade(minimum_level='warn')
    assert facade.is_enabled_for('error')
    assert facade.is_enabled_for('warn')
    assert not facade.is_enabled_for('info')
    assert facade.with_minimum_level('trace').is_enabled_for('trace')
    with pytest.raises(ValueError):
        LoggerFacade(minimum_level='loud')
