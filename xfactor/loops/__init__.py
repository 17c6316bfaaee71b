"""
Built-in viral loops.

- BuddyChallengeLoop: student challenges a friend to beat a score
- ResultsRallyLoop: results shared as a rank against peers
- ProudParentLoop: parent shares a child's progress with another parent
- StreakRescueLoop: student at risk of losing a streak phones a friend
- TutorSpotlightLoop: tutor shares a card and class sampler after a 5★ session
"""

from __future__ import annotations

from ..core.events import EventBus
from ..core.loops.base import DEFAULT_BASE_URL, BaseLoop
from ..services.smart_links import SmartLinkService
from .buddy_challenge import BuddyChallengeDetails, BuddyChallengeLoop
from .proud_parent import ChildProgress, ProudParentDetails, ProudParentLoop
from .results_rally import ResultsRallyDetails, ResultsRallyLoop
from .streak_rescue import StreakRescueDetails, StreakRescueLoop
from .tutor_spotlight import TutorSpotlightDetails, TutorSpotlightLoop

DEFAULT_LOOPS: tuple[type[BaseLoop], ...] = (
    BuddyChallengeLoop,
    ResultsRallyLoop,
    ProudParentLoop,
    StreakRescueLoop,
    TutorSpotlightLoop,
)


def create_default_loops(
    smart_links: SmartLinkService,
    event_bus: EventBus | None = None,
    base_url: str = DEFAULT_BASE_URL,
) -> list[BaseLoop]:
    """Instantiate every built-in loop against one shared link service."""
    return [loop_cls(smart_links, event_bus=event_bus, base_url=base_url) for loop_cls in DEFAULT_LOOPS]


__all__ = [
    "BuddyChallengeLoop",
    "BuddyChallengeDetails",
    "ResultsRallyLoop",
    "ResultsRallyDetails",
    "ProudParentLoop",
    "ProudParentDetails",
    "ChildProgress",
    "StreakRescueLoop",
    "StreakRescueDetails",
    "TutorSpotlightLoop",
    "TutorSpotlightDetails",
    "DEFAULT_LOOPS",
    "create_default_loops",
]
