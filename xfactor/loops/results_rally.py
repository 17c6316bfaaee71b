"""
Results Rally Loop.

Diagnostic and practice results become a rank against peers plus a
challenge link for friends to take the same test.
"""

from __future__ import annotations

from dataclasses import dataclass, field

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

RESULT_TYPES = ("diagnostic", "practice_test", "flashcard")


@dataclass
class ResultsRallyDetails:
    result_type: str | None = None
    score: float | None = None
    percentile: float | None = None
    rank: int | None = None
    total_participants: int | None = None
    skills: list[str] = field(default_factory=list)


class ResultsRallyLoop(BaseLoop):
    loop_id = ViralLoop.RESULTS_RALLY
    name = "Results Rally"
    description = "Share your results and challenge peers"
    supported_personas = (Persona.STUDENT, Persona.PARENT)
    fvm_type = FvmType.PRACTICE
    join_message = "View results and join the rally!"

    async def is_eligible(self, context: LoopContext) -> bool:
        if not self.validate_context(context):
            return False
        details = parse_details(ResultsRallyDetails, context.metadata)
        if details.result_type not in RESULT_TYPES:
            return False
        return details.score is not None or details.percentile is not None

    async def generate_invite(self, context: LoopContext, copy: PersonalizedCopy) -> LoopInvite:
        details = parse_details(ResultsRallyDetails, context.metadata)
        link = self.create_smart_link(context, LinkContext(
            subject=context.subject,
            skill=details.skills[0] if details.skills else None,
        ))

        if details.rank and details.total_participants:
            detail = f"I ranked #{details.rank} out of {details.total_participants}! "
        elif details.percentile is not None:
            detail = f"I scored in the {details.percentile:g}th percentile! "
        else:
            detail = ""

        return await self.issue_invite(
            context,
            link,
            copy,
            detail,
            result_type=details.result_type,
            score=details.score,
            percentile=details.percentile,
            rank=details.rank,
        )

    def fvm_reward(self) -> LoopReward:
        return LoopReward(
            inviter_reward=RewardGrant(RewardType.GEM_BOOST, 50, "50 gems for bringing a friend to the rally"),
            invitee_reward=RewardGrant(RewardType.PRACTICE_POWER_UP, 1, "1 practice power-up to get started"),
        )
