#!/usr/bin/env python3

# standards
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

# relais
from ..utils import maybe_await
from .base import Feature, FeatureCommands, FeatureDelegates


DEFAULT_ADAPTER_PRIORITY = 500


@dataclass
class AdapterPriority:
    """
    Ordering weights of an adapter's interceptors, by kind. Lower runs earlier. Unset values fall back to the adapter's own
    priority, then to 500.
    """

    request_interceptor: Optional[int] = None
    response_interceptor: Optional[int] = None
    error_interceptor: Optional[int] = None

    def merged(self, *overrides: Optional['AdapterPriority']) -> 'AdapterPriority':
        merged = AdapterPriority(self.request_interceptor, self.response_interceptor, self.error_interceptor)
        for override in overrides:
            if override is None:
                continue
            for kind in ('request_interceptor', 'response_interceptor', 'error_interceptor'):
                value = getattr(override, kind)
                if value is not None:
                    setattr(merged, kind, value)
        return merged


class Adapter:
    """
    A named bundle of interceptors and factory defaults that can be attached to, and detached from, a factory at runtime.
    Subclasses set `name` and override whichever getters they need.
    """

    name: str
    priority: Optional[AdapterPriority] = None
    require: Sequence[str] = ()

    async def on_attach(self, factory) -> None:
        pass

    async def on_detach(self, factory) -> None:
        pass

    def get_request_interceptors(self) -> List[Callable]:
        return []

    def get_response_interceptors(self) -> List[Any]:
        return []

    def get_error_interceptors(self) -> List[Callable]:
        return []

    def get_factory_defaults(self) -> List[Callable]:
        return []

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.name!r})'


@dataclass
class AdapterEntry:
    adapter: Adapter
    priority: AdapterPriority
    request_interceptors: List[Callable] = field(default_factory=list)
    response_interceptors: List[Any] = field(default_factory=list)
    error_interceptors: List[Callable] = field(default_factory=list)
    factory_defaults: List[Callable] = field(default_factory=list)
    attached: bool = False


class AdapterRegistry:
    """
    The adapters attached to one factory, and the interceptors they contributed.

    The contributed interceptors are added to each new request by a single default builder, the "applier". Every attach and
    detach replaces the applier with a new one, so that requests always see the current set of adapters, ordered by priority.
    """

    def __init__(self, commands: FeatureCommands) -> None:
        self.commands = commands
        self.entries: Dict[str, AdapterEntry] = {}
        self._request_interceptors: List[Tuple[int, Callable]] = []
        self._response_interceptors: List[Tuple[int, Any]] = []
        self._error_interceptors: List[Tuple[int, Callable]] = []
        self._applier: Optional[Callable] = None

    def register(self, entry: AdapterEntry) -> None:
        priority = entry.priority
        self._request_interceptors += [(priority.request_interceptor, i) for i in entry.request_interceptors]
        self._response_interceptors += [(priority.response_interceptor, i) for i in entry.response_interceptors]
        self._error_interceptors += [(priority.error_interceptor, i) for i in entry.error_interceptors]
        # stable sorts, so equal priorities keep their attach order
        self._request_interceptors.sort(key=lambda item: item[0])
        self._response_interceptors.sort(key=lambda item: item[0])
        self._error_interceptors.sort(key=lambda item: item[0])
        self.commands.add_request_defaults(*entry.factory_defaults)
        self.entries[entry.adapter.name] = entry
        self._rebuild_applier()

    def unregister(self, entry: AdapterEntry) -> None:
        self._request_interceptors = _without(self._request_interceptors, entry.request_interceptors)
        self._response_interceptors = _without(self._response_interceptors, entry.response_interceptors)
        self._error_interceptors = _without(self._error_interceptors, entry.error_interceptors)
        self.commands.remove_request_defaults(*entry.factory_defaults)
        del self.entries[entry.adapter.name]
        self._rebuild_applier()

    def _rebuild_applier(self) -> None:
        if self._applier is not None:
            self.commands.remove_request_defaults(self._applier)
            self._applier = None
        request_interceptors = [interceptor for _priority, interceptor in self._request_interceptors]
        response_interceptors = [interceptor for _priority, interceptor in self._response_interceptors]
        error_interceptors = [interceptor for _priority, interceptor in self._error_interceptors]
        if not (request_interceptors or response_interceptors or error_interceptors):
            return

        def apply_adapter_interceptors(request, view) -> None:
            if request_interceptors:
                request.with_request_interceptors(*request_interceptors)
            # SSE requests have no response interceptors
            if response_interceptors and hasattr(request, 'with_response_interceptors'):
                request.with_response_interceptors(*response_interceptors)
            if error_interceptors:
                request.with_error_interceptors(*error_interceptors)

        self._applier = apply_adapter_interceptors
        self.commands.add_request_defaults(apply_adapter_interceptors)


def _without(contributions: List[Tuple[int, Any]], removed: Sequence[Any]) -> List[Tuple[int, Any]]:
    return [item for item in contributions if not any(item[1] is r for r in removed)]


class AdaptersFeature(Feature):

    name = 'adapters'

    def apply(self, factory, commands: FeatureCommands) -> None:
        commands.context.feature_state[self.name] = AdapterRegistry(commands)

    def get_delegates(self, factory) -> FeatureDelegates:
        def registry() -> AdapterRegistry:
            return factory.context.feature_state[self.name]

        async def with_adapter(adapter: Adapter, priority: Optional[AdapterPriority] = None):
            if adapter.name in registry().entries:
                raise ValueError(f'Adapter {adapter.name!r} is already attached')
            for feature_name in adapter.require:
                factory.require_feature(feature_name)
            entry = AdapterEntry(
                adapter=adapter,
                priority=AdapterPriority(
                    DEFAULT_ADAPTER_PRIORITY,
                    DEFAULT_ADAPTER_PRIORITY,
                    DEFAULT_ADAPTER_PRIORITY,
                ).merged(adapter.priority, priority),
            )
            await maybe_await(adapter.on_attach(factory))
            entry.request_interceptors = list(adapter.get_request_interceptors())
            entry.response_interceptors = list(adapter.get_response_interceptors())
            entry.error_interceptors = list(adapter.get_error_interceptors())
            entry.factory_defaults = list(adapter.get_factory_defaults())
            registry().register(entry)
            entry.attached = True
            factory.logger.debug('Adapter %r attached', adapter.name)
            return factory

        async def detach_adapter(name: str):
            entry = registry().entries.get(name)
            if entry is None:
                raise ValueError(f'Adapter {name!r} is not attached')
            registry().unregister(entry)
            await maybe_await(entry.adapter.on_detach(factory))
            entry.attached = False
            factory.logger.debug('Adapter %r detached', name)
            return factory

        def has_adapter(name: str) -> bool:
            return name in registry().entries

        def get_attached_adapters() -> List[str]:
            return list(registry().entries)

        return FeatureDelegates(
            factory={
                'with_adapter': with_adapter,
                'detach_adapter': detach_adapter,
                'has_adapter': has_adapter,
                'get_attached_adapters': get_attached_adapters,
            }
        )
