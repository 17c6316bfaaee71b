"""
Loop Registry.

Single source of truth for which loops exist and which personas they serve.
Registering a loop under an existing id replaces it (last write wins) and keeps
its original position in enumeration order.
"""

from __future__ import annotations

from typing import Any, Iterable

from loguru import logger

from ...services.smart_links import SmartLinkService
from ..events import EventBus
from ..types import Persona, ViralLoop
from .base import DEFAULT_BASE_URL, BaseLoop


class LoopRegistry:
    """Registry of executable viral loops keyed by loop id."""

    def __init__(self, loops: Iterable[BaseLoop] = ()):
        self._loops: dict[ViralLoop, BaseLoop] = {}
        for loop in loops:
            self.register(loop)

    @classmethod
    def with_default_loops(
        cls,
        smart_links: SmartLinkService,
        event_bus: EventBus | None = None,
        base_url: str = DEFAULT_BASE_URL,
    ) -> LoopRegistry:
        """Registry pre-populated with every built-in loop sharing one link service."""
        from ...loops import create_default_loops

        return cls(create_default_loops(smart_links, event_bus=event_bus, base_url=base_url))

    def register(self, loop: BaseLoop) -> None:
        """Register a loop, replacing any loop with the same id."""
        if loop.loop_id in self._loops:
            logger.debug("Replacing registered loop {}", loop.loop_id.value)
        self._loops[loop.loop_id] = loop

    def get(self, loop_id: ViralLoop | str) -> BaseLoop | None:
        """Get a loop by id; unknown ids return None."""
        try:
            return self._loops.get(ViralLoop(loop_id))
        except ValueError:
            return None

    def has(self, loop_id: ViralLoop | str) -> bool:
        return self.get(loop_id) is not None

    def get_all(self) -> list[BaseLoop]:
        return list(self._loops.values())

    def get_by_persona(self, persona: Persona) -> list[BaseLoop]:
        return [loop for loop in self._loops.values() if persona in loop.supported_personas]

    def get_stats(self) -> dict[str, Any]:
        """Loop counts per persona plus a flat listing."""
        loops_by_persona: dict[str, int] = {}
        for loop in self._loops.values():
            for persona in loop.supported_personas:
                loops_by_persona[persona.value] = loops_by_persona.get(persona.value, 0) + 1

        return {
            "total_loops": len(self._loops),
            "loops_by_persona": loops_by_persona,
            "loops": [
                {
                    "id": loop.loop_id.value,
                    "name": loop.name,
                    "personas": [p.value for p in loop.supported_personas],
                }
                for loop in self._loops.values()
            ],
        }
