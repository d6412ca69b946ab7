#!/usr/bin/env python3

"""
The functions features hand over to the factory and to its requests. Kept apart from `relais.features` so that the request
engine can use them without importing any feature.
"""

# standards
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

# relais
from .config import ConfigView
from .datastructures import Transport
from .logs import LoggerFacade


@dataclass
class FeatureDelegates:
    """
    Functions a feature hands over. The `request` ones are consumed by `HttpRequest` during execution, the `factory` ones become
    methods of the factory (e.g. `create_sse_request`).
    """

    request: Dict[str, Callable] = field(default_factory=dict)
    factory: Dict[str, Callable] = field(default_factory=dict)


class RequestDelegates:
    """
    The request-scoped delegates of all the features used by a factory.

    `get_transport(transport, view, logger)` delegates wrap the transport function. They are applied by ascending feature
    priority, so the feature with the lowest priority sits closest to the actual transport. `handle_download_progress(response,
    signal, view, logger)` reads a response body that's neither JSON nor text.
    """

    def __init__(self) -> None:
        self._transport_wrappers: List[Tuple[int, Callable]] = []
        self.handle_download_progress: Optional[Callable] = None

    def merge(self, delegates: Dict[str, Callable], priority: int) -> None:
        for name, function in delegates.items():
            if name == 'get_transport':
                self._transport_wrappers.append((priority, function))
                self._transport_wrappers.sort(key=lambda item: item[0])
            elif name == 'handle_download_progress':
                self.handle_download_progress = function
            else:
                raise ValueError(f'Unknown request delegate: {name!r}')

    def resolve_transport(self, transport: Transport, view: ConfigView, logger: LoggerFacade) -> Transport:
        for _priority, get_transport in self._transport_wrappers:
            transport = get_transport(transport, view, logger)
        return transport
