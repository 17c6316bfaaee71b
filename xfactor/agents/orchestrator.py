"""
Loop Orchestrator Agent.

Chooses which viral loops a raw user trigger should start, after checking
opt-out and invite throttling.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from ..core.agent_base import AgentConfig, AgentRequest, AgentResponse, BaseAgent, ErrorDetail
from ..core.loops.base import parse_details
from ..core.types import Persona, UserTrigger, ViralLoop

S, P, T = Persona.STUDENT, Persona.PARENT, Persona.TUTOR

# trigger -> persona -> candidate loops, in preference order
TRIGGER_LOOPS: dict[UserTrigger, dict[Persona, list[ViralLoop]]] = {
    UserTrigger.SESSION_COMPLETE: {S: [ViralLoop.BUDDY_CHALLENGE], P: [ViralLoop.PROUD_PARENT]},
    UserTrigger.RESULTS_PAGE_VIEW: {
        S: [ViralLoop.BUDDY_CHALLENGE, ViralLoop.RESULTS_RALLY],
        P: [ViralLoop.PROUD_PARENT],
    },
    UserTrigger.BADGE_EARNED: {S: [ViralLoop.BUDDY_CHALLENGE], P: [ViralLoop.PROUD_PARENT]},
    UserTrigger.STREAK_PRESERVED: {S: [ViralLoop.BUDDY_CHALLENGE]},
    UserTrigger.STREAK_AT_RISK: {S: [ViralLoop.STREAK_RESCUE]},
    UserTrigger.CLASS_RECORDED: {S: [ViralLoop.BUDDY_CHALLENGE]},
    UserTrigger.CLUB_JOINED: {S: [ViralLoop.BUDDY_CHALLENGE]},
    UserTrigger.MILESTONE_REACHED: {S: [ViralLoop.BUDDY_CHALLENGE], P: [ViralLoop.PROUD_PARENT]},
    UserTrigger.SESSION_RATED: {T: [ViralLoop.TUTOR_SPOTLIGHT]},
}


@dataclass
class OrchestratorContext:
    subject: str | None = None
    age: int | None = None
    grade: str | None = None
    recent_loops: list[str] = field(default_factory=list)
    invite_count: int = 0
    last_invite_timestamp: str | None = None
    opted_out: bool = False


@dataclass
class OrchestratorRequest(AgentRequest):
    trigger: UserTrigger | None = None
    persona: Persona | None = None


@dataclass
class LoopSelection:
    selected_loops: list[ViralLoop] = field(default_factory=list)
    eligible: bool = True
    throttled: bool = False
    reason: str | None = None
    retry_after: int | None = None


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class OrchestratorAgent(BaseAgent):
    """Select loops for a trigger with eligibility and throttling checks."""

    def __init__(
        self,
        max_invites_per_day: int = 5,
        cooldown_minutes: int = 60,
        max_loops_per_trigger: int = 2,
        max_latency_ms: float = 150,
    ):
        super().__init__(AgentConfig(
            name="orchestrator",
            version="1.0.0",
            max_latency_ms=max_latency_ms,
            enable_caching=True,
        ))
        self.max_invites_per_day = max_invites_per_day
        self.cooldown_minutes = cooldown_minutes
        self.max_loops_per_trigger = max_loops_per_trigger

    async def handle(self, request: AgentRequest) -> AgentResponse:
        trigger = getattr(request, "trigger", None)
        persona = getattr(request, "persona", None)
        if trigger is None or persona is None:
            return self.create_error_response(
                request.request_id,
                ErrorDetail("INVALID_REQUEST", "trigger and persona are required"),
                "Cannot select loops without a trigger and persona",
            )

        trigger = UserTrigger(trigger)
        persona = Persona(persona)
        context = parse_details(OrchestratorContext, request.context)

        if context.opted_out:
            selection = LoopSelection(eligible=False, reason="User has opted out of growth communications")
            return self.create_response(
                request.request_id,
                False,
                f"User not eligible: {selection.reason}",
                data=selection,
                confidence=1.0,
                features_used=["opt_out_status"],
            )

        selection = self.check_throttling(context)
        if selection.throttled:
            return self.create_response(
                request.request_id,
                False,
                f"Request throttled: {selection.reason}",
                data=selection,
                confidence=1.0,
                features_used=["invite_count", "last_invite_timestamp"],
            )

        selection.selected_loops = self.select_loops(trigger, persona, context.recent_loops)
        if selection.selected_loops:
            rationale = (
                f"Selected {len(selection.selected_loops)} loop(s) "
                f"[{', '.join(loop.value for loop in selection.selected_loops)}] for {persona.value} "
                f"triggered by {trigger.value}. Based on user context: "
                f"{context.subject or 'no subject'}, {context.invite_count} invites today."
            )
        else:
            rationale = f"No loops selected for trigger {trigger.value} and persona {persona.value}"

        return self.create_response(
            request.request_id,
            True,
            rationale,
            data=selection,
            confidence=0.85,
            features_used=["trigger_type", "persona", "subject", "recent_loops", "invite_count"],
        )

    def check_throttling(self, context: OrchestratorContext) -> LoopSelection:
        """Apply the daily invite cap and the cooldown since the last invite."""
        last_invite = parse_timestamp(context.last_invite_timestamp) if context.last_invite_timestamp else None
        now = datetime.now(timezone.utc)

        if context.invite_count >= self.max_invites_per_day:
            if last_invite is None:
                retry_after = 3600
            else:
                remaining = (last_invite + timedelta(hours=24) - now).total_seconds()
                retry_after = max(0, math.ceil(remaining))
            return LoopSelection(
                throttled=True,
                reason=f"Daily invite limit reached ({self.max_invites_per_day})",
                retry_after=retry_after,
            )

        if last_invite is not None:
            cooldown = timedelta(minutes=self.cooldown_minutes)
            elapsed = now - last_invite
            if elapsed < cooldown:
                return LoopSelection(
                    throttled=True,
                    reason=f"Cooldown period active ({self.cooldown_minutes} minutes)",
                    retry_after=math.ceil((cooldown - elapsed).total_seconds()),
                )

        return LoopSelection()

    def select_loops(
        self,
        trigger: UserTrigger,
        persona: Persona,
        recent_loops: list[Any],
    ) -> list[ViralLoop]:
        """Candidate loops for the trigger, preferring ones not used recently."""
        candidates = TRIGGER_LOOPS.get(trigger, {}).get(persona, [])
        recent = {getattr(loop, "value", loop) for loop in recent_loops}
        available = [loop for loop in candidates if loop.value not in recent]
        if not available:
            available = candidates
        return available[: self.max_loops_per_trigger]
