"""
Buddy Challenge Loop.

Student to student: share a "beat my score" micro-deck with a friend.
Both get a streak shield if the friend reaches FVM within 48 hours.
"""

from __future__ import annotations

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


@dataclass
class BuddyChallengeDetails:
    practice_score: float | None = None
    practice_subject: str | None = None
    practice_skill: str | None = None
    challenge_deck_id: str | None = None
    co_practice: bool = False
    exam_date: str | None = None


def infer_difficulty(score: float | None) -> str:
    if score is None:
        return "medium"
    if score >= 80:
        return "hard"
    if score >= 60:
        return "medium"
    return "easy"


class BuddyChallengeLoop(BaseLoop):
    loop_id = ViralLoop.BUDDY_CHALLENGE
    name = "Buddy Challenge"
    description = "Challenge a friend to beat your practice score"
    supported_personas = (Persona.STUDENT,)
    fvm_type = FvmType.CHALLENGE
    fvm_window_hours = 48
    join_message = "Challenge accepted!"

    async def is_eligible(self, context: LoopContext) -> bool:
        if not self.validate_context(context):
            return False
        details = parse_details(BuddyChallengeDetails, context.metadata)
        # A subject alone is enough to build a deck from
        return (
            details.practice_score is not None
            or bool(details.challenge_deck_id)
            or bool(context.subject or details.practice_subject)
        )

    async def generate_invite(self, context: LoopContext, copy: PersonalizedCopy) -> LoopInvite:
        details = parse_details(BuddyChallengeDetails, context.metadata)
        deck_id = details.challenge_deck_id or self.challenge_deck_id(context, details)

        link = self.create_smart_link(context, LinkContext(
            subject=context.subject or details.practice_subject,
            skill=details.practice_skill,
            challenge_id=deck_id,
            difficulty=infer_difficulty(details.practice_score),
        ))

        return await self.issue_invite(
            context,
            link,
            copy,
            expires_at=datetime.now(timezone.utc) + timedelta(hours=self.fvm_window_hours),
            challenge_deck_id=deck_id,
            practice_score=details.practice_score,
            co_practice=details.co_practice or None,
        )

    def fvm_reward(self) -> LoopReward:
        return LoopReward(
            inviter_reward=RewardGrant(
                RewardType.STREAK_SHIELD, 1, "1 streak shield for friend completing challenge"
            ),
            invitee_reward=RewardGrant(RewardType.STREAK_SHIELD, 1, "1 streak shield for completing challenge"),
            fvm_required=True,
            time_window_hours=self.fvm_window_hours,
        )

    @staticmethod
    def challenge_deck_id(context: LoopContext, details: BuddyChallengeDetails) -> str:
        """Deterministic 5-question deck id for the inviter's subject and skill."""
        subject = (context.subject or details.practice_subject or "general").lower().replace(" ", "-")
        skill = (details.practice_skill or "practice").lower().replace(" ", "-")
        return f"challenge-{subject}-{skill}-{context.user_id}"[:40]
