#!/usr/bin/env python3

# standards
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Dict, List

# relais
from ..delegates import FeatureDelegates, RequestDelegates  # pylint: disable=unused-import

if TYPE_CHECKING:  # pragma: no cover
    from ..factory import HttpRequestFactory


@dataclass
class FactoryContext:
    """
    Per-factory state shared between the factory and the features plugged into it.
    """

    default_builders: List[Callable] = field(default_factory=list)
    after_request_created_hooks: List[Callable] = field(default_factory=list)
    before_transport_hooks: List[Callable] = field(default_factory=list)
    feature_state: Dict[str, Any] = field(default_factory=dict)


class FeatureCommands:
    """
    What a feature can do to the factory when it's plugged in.
    """

    def __init__(self, context: FactoryContext) -> None:
        self._context = context

    @property
    def context(self) -> FactoryContext:
        return self._context

    def add_request_defaults(self, *builders: Callable) -> None:
        self._context.default_builders.extend(builders)

    def remove_request_defaults(self, *builders: Callable) -> None:
        # by identity, two builders may well compare equal
        self._context.default_builders[:] = [
            builder
            for builder in self._context.default_builders
            if not any(builder is removed for removed in builders)
        ]

    def after_request_created(self, hook: Callable) -> None:
        self._context.after_request_created_hooks.append(hook)

    def before_transport(self, hook: Callable) -> None:
        self._context.before_transport_hooks.append(hook)


class Feature:
    """
    A pluggable unit of optional functionality. Subclasses set `name`, and override `apply`, `get_delegates`, or both.
    """

    name: ClassVar[str]
    priority: ClassVar[int] = 100

    def apply(self, factory: 'HttpRequestFactory', commands: FeatureCommands) -> None:
        pass

    def get_delegates(self, factory: 'HttpRequestFactory') -> FeatureDelegates:
        return FeatureDelegates()

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.name!r})'
