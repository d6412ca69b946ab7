#!/usr/bin/env python3

# relais
from .adapters import Adapter, AdapterPriority, AdaptersFeature
from .base import FactoryContext, Feature, FeatureCommands, FeatureDelegates, RequestDelegates
from .download_progress import DownloadProgressFeature
from .progress import ProgressEmitter, ProgressEvent
from .request_hash import RequestHashFeature
from .retry import RetryContext, RetryFeature, RetryMetaConfig, RetryPolicy, exponential_backoff, linear_backoff
from .sse_request import SSERequestFeature
from .upload_progress import UploadProgressEngine, UploadProgressFeature
