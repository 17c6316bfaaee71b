"""
Streak Rescue Loop.

A student whose streak is about to expire can phone a friend to
co-practice. Both get a streak shield.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from ..core.loops.base import (
    BaseLoop,
    LoopContext,
    LoopInvite,
    LoopReward,
    PersonalizedCopy,
    RewardGrant,
    parse_details,
)
from ..core.types import FvmType, Persona, RewardType, ViralLoop
from ..services.smart_links import LinkContext

STREAK_RISK_WINDOW_HOURS = 24


@dataclass
class StreakRescueDetails:
    current_streak: int = 0
    streak_expires_at: str | None = None
    practice_topic: str | None = None

    def expires_at(self) -> datetime | None:
        if not self.streak_expires_at:
            return None
        parsed = datetime.fromisoformat(self.streak_expires_at.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    def hours_until_expiry(self) -> float | None:
        expires_at = self.expires_at()
        if expires_at is None:
            return None
        return (expires_at - datetime.now(timezone.utc)) / timedelta(hours=1)


class StreakRescueLoop(BaseLoop):
    loop_id = ViralLoop.STREAK_RESCUE
    name = "Streak Rescue"
    description = "Phone-a-friend to save your streak"
    supported_personas = (Persona.STUDENT,)
    fvm_type = FvmType.PRACTICE
    fvm_window_hours = STREAK_RISK_WINDOW_HOURS
    join_message = "Help your friend save their streak!"

    async def is_eligible(self, context: LoopContext) -> bool:
        if not self.validate_context(context):
            return False
        details = parse_details(StreakRescueDetails, context.metadata)
        if details.current_streak < 1:
            return False
        hours_left = details.hours_until_expiry()
        # Not at risk yet, or already lost
        return hours_left is not None and 0 <= hours_left <= STREAK_RISK_WINDOW_HOURS

    async def generate_invite(self, context: LoopContext, copy: PersonalizedCopy) -> LoopInvite:
        details = parse_details(StreakRescueDetails, context.metadata)
        link = self.create_smart_link(context, LinkContext(
            subject=context.subject,
            skill=details.practice_topic,
        ))

        hours_left = max(details.hours_until_expiry() or 0.0, 0.0)
        detail = (
            f"I need help! My {details.current_streak}-day streak expires "
            f"in {math.ceil(hours_left)} hours! "
        )

        return await self.issue_invite(
            context,
            link,
            copy,
            detail,
            expires_at=details.expires_at(),
            current_streak=details.current_streak,
            hours_until_expiry=round(hours_left, 2),
        )

    def fvm_reward(self) -> LoopReward:
        return LoopReward(
            inviter_reward=RewardGrant(
                RewardType.STREAK_SHIELD, 1, "1 streak shield for friend helping save your streak"
            ),
            invitee_reward=RewardGrant(RewardType.STREAK_SHIELD, 1, "1 streak shield for helping a friend"),
            fvm_required=True,
            time_window_hours=self.fvm_window_hours,
        )
