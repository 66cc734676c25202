"""Pluggable microgame modules.

The engine only talks to a module through :class:`MicrogameContext`; it never
looks inside. Modules are registered by microgame id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Mapping, Protocol

from macroplay.core.models import Microgame, MicrogameResult


@dataclass
class MicrogameContext:
    """Callbacks and data handed to a running module."""

    on_end: Callable[[MicrogameResult], None]
    on_report_event: Callable[[str], None]
    on_interaction: Callable[[], None]
    game_data: Microgame
    skin_config: Mapping[str, str] = field(default_factory=dict)
    is_overlay_visible: Callable[[], bool] = lambda: False


class MicrogameModule(Protocol):
    def start(self, context: MicrogameContext) -> None: ...

    def stop(self) -> None: ...


ModuleFactory = Callable[[], MicrogameModule]


class MicrogameRegistry:
    def __init__(self) -> None:
        self._factories: Dict[str, ModuleFactory] = {}

    def register(self, microgame_id: str, factory: ModuleFactory) -> None:
        self._factories[microgame_id] = factory

    def create(self, microgame_id: str) -> MicrogameModule:
        """Instantiate the module for *microgame_id*; KeyError if none is registered."""
        return self._factories[microgame_id]()

    def __contains__(self, microgame_id: object) -> bool:
        return microgame_id in self._factories

    def __iter__(self) -> Iterator[str]:
        return iter(self._factories)
