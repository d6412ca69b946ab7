#!/usr/bin/env python3

# standards
from asyncio import sleep
from dataclasses import dataclass, fields, replace
import random
from typing import Any, Callable, Mapping, Optional, Union

# relais
from ..config import ConfigView
from ..datastructures import HttpError, RequestAborted, Response, Transport, TransportInit
from ..logs import LoggerFacade
from ..utils import maybe_await
from .base import Feature, FeatureDelegates


RetryDelay = Union[int, float, Callable[..., float]]


@dataclass
class RetryContext:
    """
    What the retry condition gets to look at. Exactly one of `error` and `response` is set: `error` when the transport raised,
    `response` when it returned.
    """

    attempt: int
    retry_config: 'RetryPolicy'
    request_config: ConfigView
    error: Optional[HttpError] = None
    response: Optional[Response] = None


@dataclass
class RetryPolicy:
    """
    How to retry a request. Fields left to None fall back to the feature's defaults.

    `retry_delay` is in milliseconds, or a function `(attempt, error, request_config) -> milliseconds`. `retry_condition` gets a
    `RetryContext` and returns whether to try again.
    """

    attempts: Optional[int] = None
    retry_delay: Optional[RetryDelay] = None
    retry_condition: Optional[Callable[[RetryContext], bool]] = None
    on_retry: Optional[Callable] = None
    on_retry_success: Optional[Callable] = None
    on_max_attempts_exceeded: Optional[Callable] = None

    def merged_onto(self, base: 'RetryPolicy') -> 'RetryPolicy':
        overrides = {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}
        return replace(base, **overrides)


@dataclass
class RetryMetaConfig:
    normally: str = 'off'
    evaluator: Optional[Callable[[Mapping[str, Any]], bool]] = None
    defaults: Optional[RetryPolicy] = None


def exponential_backoff(
    initial_delay: float = 100,
    multiplier: float = 2,
    max_delay: float = 30000,
    jitter: bool = True,
) -> Callable[..., float]:
    def delay(attempt: int, error: Optional[HttpError] = None, request_config: Optional[ConfigView] = None) -> float:
        value = min(initial_delay * multiplier**attempt, max_delay)
        if jitter:
            value += value * random.uniform(-0.1, 0.1)
        return value

    return delay


def linear_backoff(delay: float = 1000) -> Callable[..., float]:
    def compute(attempt: int, error: Optional[HttpError] = None, request_config: Optional[ConfigView] = None) -> float:
        return delay * attempt

    return compute


class RetryFeature(Feature):
    """
    Retries failed transport calls. The policy for one request is, by order of precedence: the request's own policy (see
    `HttpRequest.with_retry`), the meta-driven policy when `with_meta_config` was called and its evaluator says yes, and the
    feature's defaults. The defaults don't retry at all unless told otherwise.
    """

    name = 'retry'
    priority = 80

    def __init__(self) -> None:
        self.defaults = RetryPolicy(attempts=0, retry_delay=1000, retry_condition=lambda context: True)
        self.meta_config: Optional[RetryMetaConfig] = None

    def with_default_retry_delay(self, delay: RetryDelay) -> 'RetryFeature':
        self.defaults.retry_delay = delay
        return self

    def with_default_retry_condition(self, condition: Callable[[RetryContext], bool]) -> 'RetryFeature':
        self.defaults.retry_condition = condition
        return self

    def with_default_attempts(self, attempts: int) -> 'RetryFeature':
        self.defaults.attempts = attempts
        return self

    def with_defaults(self, policy: RetryPolicy) -> 'RetryFeature':
        self.defaults = policy.merged_onto(self.defaults)
        return self

    def with_meta_config(self, meta_config: Optional[RetryMetaConfig] = None) -> 'RetryFeature':
        """
        Let the request's meta decide whether to retry, for requests that have no policy of their own. Without an evaluator,
        `meta['retry']` must be a bool or absent, and `normally` ('on' or 'off') applies when it's absent. When the evaluator says
        yes, `defaults` are merged onto the feature's defaults.
        """
        meta_config = meta_config or RetryMetaConfig()
        normally = meta_config.normally or 'off'

        def default_evaluator(meta: Mapping[str, Any]) -> bool:
            value = meta.get('retry')
            if value is not None and not isinstance(value, bool):
                raise ValueError("Retry feature: meta['retry'] is expected to be a bool or None")
            return value if value is not None else normally == 'on'

        self.meta_config = RetryMetaConfig(
            normally=normally,
            evaluator=meta_config.evaluator or default_evaluator,
            defaults=meta_config.defaults,
        )
        return self

    def get_delegates(self, factory) -> FeatureDelegates:
        return FeatureDelegates(request={'get_transport': self.get_transport})

    def resolve_policy(self, view: ConfigView, logger: LoggerFacade) -> RetryPolicy:
        request_policy = view.retry
        if request_policy is not None:
            logger.debug('Retry feature: using the request policy')
            if self.meta_config is not None:
                logger.warn('Retry feature: meta config is enabled, but the request has its own policy. Ignoring meta config')
            if callable(request_policy):
                request_policy = request_policy(view)
            return request_policy.merged_onto(self.defaults)
        if self.meta_config is not None:
            logger.debug('Retry feature: using meta config')
            if self.meta_config.evaluator(view.meta):
                return (self.meta_config.defaults or RetryPolicy()).merged_onto(self.defaults)
        logger.debug('Retry feature: using defaults')
        return replace(self.defaults)

    def get_transport(self, transport: Transport, view: ConfigView, logger: LoggerFacade) -> Transport:
        policy = self.resolve_policy(view, logger)
        attempts = policy.attempts or 0
        if attempts == 0:
            return transport

        async def retrying_transport(url: str, init: TransportInit) -> Response:
            last_error: Optional[HttpError] = None
            for attempt in range(attempts + 1):
                can_retry = attempt < attempts
                try:
                    response = await transport(url, init)
                except RequestAborted:
                    raise
                except Exception as error:  # pylint: disable=broad-except
                    http_error = error if isinstance(error, HttpError) else HttpError(-1, str(error) or 'Network error', error)
                    last_error = http_error
                    context = RetryContext(attempt, policy, view, error=http_error)
                    if can_retry and policy.retry_condition(context):
                        await self._wait(attempt, http_error, policy, view, logger)
                        continue
                    break
                context = RetryContext(attempt, policy, view, response=response)
                if can_retry and policy.retry_condition(context):
                    await response.cancel()
                    await self._wait(
                        attempt,
                        HttpError(response.status_code, f'HTTP {response.status_code}'),
                        policy,
                        view,
                        logger,
                    )
                    continue
                if attempt > 0 and policy.on_retry_success:
                    await maybe_await(policy.on_retry_success(attempt, response))
                return response

            assert last_error is not None
            if policy.on_max_attempts_exceeded and attempt == attempts:
                await maybe_await(policy.on_max_attempts_exceeded(last_error, attempts))
            raise last_error

        return retrying_transport

    async def _wait(
        self,
        attempt: int,
        error: HttpError,
        policy: RetryPolicy,
        view: ConfigView,
        logger: LoggerFacade,
    ) -> None:
        delay = policy.retry_delay
        if callable(delay):
            delay = delay(attempt, error, view)
        logger.info('Retry feature: attempt %d failed (%s), retrying in %d ms', attempt + 1, error, delay)
        if policy.on_retry:
            await maybe_await(policy.on_retry(attempt + 1, error, delay))
        await sleep(delay / 1000)
