#!/usr/bin/env python3

# standards
import asyncio

# 3rd parties
import pytest

# relais
from relais import (
    Blob,
    DownloadProgressFeature,
    HttpError,
    HttpRequestFactory,
    ProgressHandlers,
    Response,
    UploadProgressFeature,
)
from relais.datastructures import ByteStream, Headers
from relais.features.progress import ProgressEmitter
from .utils import DummyEngine, json_response


def binary_response(size=100, chunk_size=50, known_length=False):
    headers = {'Content-Type': 'application/octet-stream'}
    if known_length:
        headers['Content-Length'] = str(size)
    return Response.from_bytes(bytes(size), headers=headers, chunk_size=chunk_size)


class StalledStream(ByteStream):
    """
    Yields one chunk, then hangs
    """

    def __init__(self):
        self.chunks_read = 0
        self.cancelled = False

    async def read_chunk(self):
        self.chunks_read += 1
        if self.chunks_read == 1:
            return b'x' * 10
        await asyncio.sleep(60)
        return None

    async def cancel(self):
        self.cancelled = True


@pytest.fixture
def factory():
    return HttpRequestFactory(DummyEngine(lambda url, init: binary_response())).use(DownloadProgressFeature())


@pytest.mark.asyncio
async def test_download_progress_unknown_length(factory):
    events = []
    blob = await (
        factory.create_get_request('https://example.com/file')
        .with_progress_handlers(ProgressHandlers(on_download_progress=events.append))
        .execute()
    )
    assert blob == Blob(bytes(100), 'application/octet-stream')
    assert events[0].percent_progress == 0
    assert events[0].loaded_bytes == 0
    assert events[-1].percent_progress == 100
    assert events[-1].loaded_bytes == 100
    assert all(event.total_bytes is None for event in events)
    assert all(event.phase == 'download' for event in events)


@pytest.mark.asyncio
async def test_download_progress_known_length():
    factory = HttpRequestFactory(DummyEngine(binary_response(known_length=True))).use(DownloadProgressFeature())
    events = []
    await (
        factory.create_get_request('https://example.com/file')
        .with_progress_handlers(ProgressHandlers(on_download_progress=events.append))
        .execute()
    )
    assert [(event.percent_progress, event.loaded_bytes, event.total_bytes) for event in events] == [
        (0, 0, 100),
        (50, 50, 100),
        (100, 100, 100),
        (100, 100, 100),
    ]


@pytest.mark.asyncio
async def test_events_stop_unless_handlers_fall_through(factory):
    first, second, third = [], [], []

    def passing(event):
        first.append(event.percent_progress)
        event.fall_through()

    await (
        factory.create_get_request('https://example.com/file')
        .with_progress_handlers(
            ProgressHandlers(on_download_progress=passing),
            ProgressHandlers(on_download_progress=lambda event: second.append(event.percent_progress)),
            ProgressHandlers(on_download_progress=lambda event: third.append(event.percent_progress)),
        )
        .execute()
    )
    assert first
    assert second == first
    assert third == []


@pytest.mark.asyncio
async def test_throttling_keeps_initial_and_final_events():
    factory = HttpRequestFactory(DummyEngine(binary_response(size=100, chunk_size=10, known_length=True)))
    factory.use(DownloadProgressFeature())
    events = []
    await (
        factory.create_get_request('https://example.com/file')
        .with_progress_handlers(ProgressHandlers(on_download_progress=events.append, throttle_ms=60000))
        .execute()
    )
    # the initial event, one chunk, then nothing until the final event
    assert [event.percent_progress for event in events] == [0, 10, 100]


@pytest.mark.asyncio
async def test_json_responses_have_no_progress_events():
    factory = HttpRequestFactory(DummyEngine(json_response({'a': 1}))).use(DownloadProgressFeature())
    events = []
    result = await (
        factory.create_get_request('https://example.com/')
        .with_progress_handlers(ProgressHandlers(on_download_progress=events.append))
        .execute()
    )
    assert result == {'a': 1}
    assert events == []


@pytest.mark.asyncio
async def test_abort_during_download():
    stream = StalledStream()
    response = Response(200, 'OK', Headers({'Content-Type': 'application/octet-stream'}), stream)
    factory = HttpRequestFactory(DummyEngine(response)).use(DownloadProgressFeature())
    events = []
    errors = []
    with pytest.raises(HttpError) as raised:
        await (
            factory.create_get_request('https://example.com/file')
            .with_progress_handlers(ProgressHandlers(on_download_progress=events.append))
            .with_timeout(50)
            .with_error_interceptors(errors.append)
            .execute()
        )
    assert raised.value.is_aborted
    assert stream.cancelled
    assert [error.code for error in errors] == [-1]
    assert [event.loaded_bytes for event in events] == [0, 10]


def test_emitter_percentages():
    emitter = ProgressEmitter('download', [], 0, view=None, total_bytes=200)
    assert emitter.compute_percent(0, done=False) == 0
    assert emitter.compute_percent(50, done=False) == 25
    assert emitter.compute_percent(500, done=False) == 100
    assert emitter.compute_percent(0, done=True) == 100
    emitter.total_bytes = None
    assert emitter.compute_percent(150, done=False) == 0


@pytest.mark.asyncio
async def test_upload_progress(server):
    factory = HttpRequestFactory('requests').use(UploadProgressFeature())
    events = []
    result = await (
        factory.create_post_request(f'{server}/upload')
        .with_body(b'x' * 100000)
        .with_header('Content-Type', 'application/octet-stream')
        .with_progress_handlers(ProgressHandlers(on_upload_progress=events.append))
        .execute()
    )
    assert result == {'size': 100000}
    assert events
    assert all(event.phase == 'upload' for event in events)
    assert events[-1].percent_progress == 100
    assert events[-1].loaded_bytes == 100000
    assert events[-1].total_bytes == 100000


@pytest.mark.asyncio
async def test_final_upload_event_is_not_throttled(server):
    factory = HttpRequestFactory('requests').use(UploadProgressFeature())
    events = []
    await (
        factory.create_post_request(f'{server}/upload')
        .with_body(b'x' * 100000)
        .with_header('Content-Type', 'application/octet-stream')
        .with_progress_handlers(ProgressHandlers(on_upload_progress=events.append, throttle_ms=60000))
        .execute()
    )
    # at most the first chunk and the final event get through
    assert 1 <= len(events) <= 2
    assert events[-1].percent_progress == 100
    assert events[-1].loaded_bytes == 100000

@pytest.mark.asyncio
async def test_requests_without_upload_handlers_keep_their_transport():
    engine = DummyEngine()
    factory = HttpRequestFactory(engine).use(UploadProgressFeature())
    await factory.create_post_request('https://example.com/').with_body('hello').execute()
    assert len(engine.calls) == 1
