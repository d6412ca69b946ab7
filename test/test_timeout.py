#!/usr/bin/env python3

# standards
import asyncio
import inspect

# 3rd parties
import pytest

# relais
from relais import HttpError, HttpRequestFactory
from relais.datastructures import RequestAborted
from relais.signals import AbortSignal
from .utils import DummyEngine, json_response


@pytest.mark.asyncio
async def test_timeout_aborts_a_hanging_transport():
    errors = []
    aborted = []
    factory = HttpRequestFactory(DummyEngine(None))
    with pytest.raises(HttpError) as raised:
        await (
            factory.create_get_request('https://example.com/slow')
            .with_timeout(50)
            .with_error_interceptors(errors.append)
            .with_abort_listeners(lambda: aborted.append(True))
            .execute()
        )
    assert raised.value.code == -1
    assert raised.value.is_aborted
    assert errors == [raised.value]
    assert aborted == [True]


@pytest.mark.asyncio
async def test_timer_is_cleared_after_success():
    aborted = []
    factory = HttpRequestFactory(DummyEngine())
    request = factory.create_get_request('https://example.com/').with_timeout(50).with_abort_listeners(lambda: aborted.append(True))
    assert await request.execute() == {}
    await asyncio.sleep(0.1)
    assert aborted == []
    assert not request.signal.aborted


def test_negative_timeouts_are_rejected():
    with pytest.raises(ValueError):
        HttpRequestFactory(DummyEngine()).create_get_request('https://example.com/').with_timeout(-1)


@pytest.mark.asyncio
async def test_request_interceptor_can_abort():
    engine = DummyEngine()
    errors = []

    def interceptor(view, controls):
        controls.abort()

    factory = HttpRequestFactory(engine)
    with pytest.raises(HttpError) as raised:
        await factory.create_get_request('https://example.com/').with_request_interceptors(interceptor).with_error_interceptors(errors.append).execute()
    assert raised.value.is_aborted
    assert engine.calls == []
    assert len(errors) == 1


@pytest.mark.asyncio
async def test_async_interceptor_is_interrupted_by_the_timeout():
    async def slow_interceptor(view, controls):
        await asyncio.sleep(60)

    factory = HttpRequestFactory(DummyEngine())
    with pytest.raises(HttpError) as raised:
        await factory.create_get_request('https://example.com/').with_request_interceptors(slow_interceptor).with_timeout(50).execute()
    assert raised.value.is_aborted


@pytest.mark.asyncio
async def test_aborting_from_outside():
    factory = HttpRequestFactory(DummyEngine(None))
    request = factory.create_get_request('https://example.com/')
    asyncio.get_running_loop().call_later(0.05, request.signal.abort)
    with pytest.raises(HttpError) as raised:
        await request.execute()
    assert raised.value.is_aborted


@pytest.mark.asyncio
async def test_abort_during_response_interceptor():
    async def slow_response_interceptor(response, view, controls):
        await asyncio.sleep(60)

    factory = HttpRequestFactory(DummyEngine(lambda url, init: json_response({})))
    with pytest.raises(HttpError) as raised:
        await (
            factory.create_get_request('https://example.com/')
            .with_response_interceptors(slow_response_interceptor)
            .with_timeout(50)
            .execute()
        )
    assert raised.value.is_aborted


@pytest.mark.asyncio
async def test_hanging_before_transport_hook_is_interrupted_by_the_timeout():
    engine = DummyEngine()
    factory = HttpRequestFactory(engine)

    async def slow_hook(init, view):
        await asyncio.sleep(60)

    factory.context.before_transport_hooks.append(slow_hook)
    errors = []
    with pytest.raises(HttpError) as raised:
        await factory.create_get_request('https://example.com/').with_timeout(50).with_error_interceptors(errors.append).execute()
    assert raised.value.is_aborted
    assert errors == [raised.value]
    assert engine.calls == []


@pytest.mark.asyncio
async def test_slow_transformer_is_interrupted_by_the_timeout():
    async def slow_transformer(data, view):
        await asyncio.sleep(60)

    factory = HttpRequestFactory(DummyEngine(lambda url, init: json_response({})))
    with pytest.raises(HttpError) as raised:
        await factory.create_get_request('https://example.com/').with_response_body_transformers(slow_transformer).with_timeout(50).execute()
    assert raised.value.is_aborted


@pytest.mark.asyncio
async def test_slow_transformer_after_short_circuit_is_interrupted_by_the_timeout():
    async def slow_transformer(data, view):
        await asyncio.sleep(60)

    factory = HttpRequestFactory(DummyEngine())
    with pytest.raises(HttpError) as raised:
        await (
            factory.create_get_request('https://example.com/')
            .with_request_interceptors(lambda view, controls: {'cached': True})
            .with_response_body_transformers(slow_transformer)
            .with_timeout(50)
            .execute()
        )
    assert raised.value.is_aborted

def test_signal_listeners():
    signal = AbortSignal()
    calls = []
    signal.add_listener(lambda: calls.append('first'))
    signal.add_listener(lambda: calls.append('second'))
    signal.abort('because')
    signal.abort('again')
    assert calls == ['first', 'second']
    assert signal.reason == 'because'
    signal.add_listener(lambda: calls.append('late'))
    assert calls == ['first', 'second', 'late']
    with pytest.raises(RequestAborted):
        signal.raise_if_aborted()


@pytest.mark.asyncio
async def test_signal_guard():
    signal = AbortSignal()
    assert await signal.guard(asyncio.sleep(0, result='done')) == 'done'
    asyncio.get_running_loop().call_later(0.01, signal.abort)
    with pytest.raises(RequestAborted):
        await signal.guard(asyncio.sleep(60))


@pytest.mark.asyncio
async def test_guard_on_a_fired_signal_closes_the_coroutine():
    signal = AbortSignal()
    signal.abort('early')
    coroutine = asyncio.sleep(60)
    with pytest.raises(RequestAborted):
        await signal.guard(coroutine)
    assert inspect.getcoroutinestate(coroutine) == inspect.CORO_CLOSED
