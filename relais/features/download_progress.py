#!/usr/bin/env python3

# relais
from ..config import ConfigView
from ..datastructures import Blob, RequestAborted, Response
from ..logs import LoggerFacade
from ..signals import AbortSignal
from .base import Feature, FeatureDelegates
from .progress import ProgressEmitter


class DownloadProgressFeature(Feature):
    """
    Streams binary response bodies chunk by chunk, reporting progress to the request's `on_download_progress` handlers. JSON and
    text bodies are read in one go, without progress events.
    """

    name = 'download-progress'

    def get_delegates(self, factory) -> FeatureDelegates:
        return FeatureDelegates(request={'handle_download_progress': handle_download_progress})


async def handle_download_progress(
    response: Response,
    signal: AbortSignal,
    view: ConfigView,
    logger: LoggerFacade,
) -> Blob:
    emitter = ProgressEmitter.for_phase('download', view, total_bytes=response.content_length)
    if emitter is None:
        return await response.blob()

    emitter.start()
    chunks = []
    loaded = 0
    try:
        while True:
            chunk = await signal.guard(response.read_chunk())
            if chunk is None:
                break
            chunks.append(chunk)
            loaded += len(chunk)
            emitter.tick(loaded)
    except RequestAborted:
        logger.debug('Download of %s aborted after %d bytes', response.url, loaded)
        await response.cancel()
        raise
    emitter.finish(loaded)
    return Blob(b''.join(chunks), response.content_type or 'application/octet-stream')
