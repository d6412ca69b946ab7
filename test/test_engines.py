#!/usr/bin/env python3

# standards
import asyncio
from random import randrange

# 3rd parties
import pytest

# relais
from relais import Blob, Headers, HttpError, HttpRequestFactory, TransportInit
from relais.engines import ALL_ENGINES, RequestsEngine, load_engine, register_engine
from relais.signals import AbortSignal


@pytest.fixture
def factory():
    return HttpRequestFactory('requests')


def test_load_engine():
    assert isinstance(load_engine('requests'), RequestsEngine)
    assert load_engine('requests:1024').chunk_size == 1024
    engine = RequestsEngine()
    assert load_engine(engine) is engine
    assert ALL_ENGINES['requests'] is RequestsEngine
    with pytest.raises(KeyError):
        load_engine('carrier-pigeon')


def test_engine_ids_are_unique():
    class Impostor(RequestsEngine):
        pass

    with pytest.raises(ValueError):
        register_engine(Impostor)
    assert ALL_ENGINES['requests'] is RequestsEngine


@pytest.mark.asyncio
async def test_get_text(factory, server):
    assert await factory.create_get_request(f'{server}/hello').execute() == 'hello'


@pytest.mark.asyncio
async def test_echo_query_params_and_headers(factory, server):
    echo = await (
        factory.create_get_request(f'{server}/echo')
        .with_query_params({'q': 'zoé', 'tag': ['a', 'b']})
        .with_header('X-Custom', 'yes')
        .execute()
    )
    assert echo['method'] == 'GET'
    assert echo['args'] == {'q': ['zoé'], 'tag': ['a', 'b']}
    assert echo['headers']['x-custom'] == 'yes'
    assert echo['headers']['accept'] == '*/*'
    assert echo['headers']['user-agent'].startswith('relais/')


@pytest.mark.asyncio
async def test_post_json(factory, server):
    echo = await factory.create_post_request(f'{server}/echo').with_json_body({'a': [1, 2]}).execute()
    assert echo['method'] == 'POST'
    assert echo['json'] == {'a': [1, 2]}


@pytest.mark.asyncio
async def test_post_form_encoded(factory, server):
    echo = await factory.create_post_request(f'{server}/echo').with_form_encoded_body({'a': '1', 'b': ['x', 'y']}).execute()
    assert echo['form'] == {'a': ['1'], 'b': ['x', 'y']}


@pytest.mark.asyncio
async def test_post_form_data(factory, server):
    def compose(form_data):
        form_data.append('name', 'zoe')
        form_data.append('attachment', b'file contents', filename='notes.txt')

    echo = await factory.create_put_request(f'{server}/echo').with_form_data_body(compose).execute()
    assert echo['method'] == 'PUT'
    assert echo['form'] == {'name': ['zoe']}
    assert echo['files'] == {'attachment': 'file contents'}


@pytest.mark.asyncio
async def test_http_error(factory, server):
    with pytest.raises(HttpError) as raised:
        await factory.create_get_request(f'{server}/status/404').execute()
    assert raised.value.code == 404
    assert raised.value.message == 'NOT FOUND'
    assert raised.value.context == {'status': 404}


@pytest.mark.asyncio
async def test_no_content(factory, server):
    assert await factory.create_get_request(f'{server}/status/204').execute() is None


@pytest.mark.asyncio
async def test_no_content_type(factory, server):
    assert await factory.create_get_request(f'{server}/no-content-type').execute() is None


@pytest.mark.asyncio
async def test_binary_body(factory, server):
    blob = await factory.create_get_request(f'{server}/bytes/1000?chunks=4').execute()
    assert isinstance(blob, Blob)
    assert blob.content_type == 'application/octet-stream'
    assert blob.data == bytes(i % 256 for i in range(1000))


@pytest.mark.asyncio
async def test_connection_error(factory):
    port = randrange(50001, 60000)
    with pytest.raises(HttpError) as raised:
        await factory.create_get_request(f'http://127.0.0.1:{port}/').execute()
    assert raised.value.code == -1
    assert not raised.value.is_aborted


@pytest.mark.asyncio
async def test_engine_response_is_streamed(server):
    engine = RequestsEngine(chunk_size=100)
    response = await engine.request(f'{server}/bytes/250', TransportInit(method='GET', signal=AbortSignal()))
    assert response.status_code == 200
    assert isinstance(response.headers, Headers)
    assert response.headers['content-length'] == '250'
    assert response.content_length == 250
    chunks = []
    while True:
        chunk = await response.read_chunk()
        if chunk is None:
            break
        chunks.append(chunk)
    assert sum(map(len, chunks)) == 250
    assert len(chunks) >= 2


@pytest.mark.asyncio
async def test_timeout_against_slow_server(factory, server):
    errors = []
    with pytest.raises(HttpError) as raised:
        await (
            factory.create_get_request(f'{server}/delay')
            .with_query_param('ms', 400)
            .with_timeout(100)
            .with_error_interceptors(errors.append)
            .execute()
        )
    assert raised.value.is_aborted
    assert [error.code for error in errors] == [-1]
    # leave the worker thread time to give up
    await asyncio.sleep(0.5)
