"""
Proud Parent Loop.

Parent to parent: a weekly recap or progress milestone becomes a
privacy-safe share with an invite link. Both families get a class pass.
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


@dataclass
class ChildProgress:
    subject: str | None = None
    improvement: float | None = None
    achievements: list[str] = field(default_factory=list)


@dataclass
class ProudParentDetails:
    milestone_type: str | None = None  # weekly_recap, progress_milestone, achievement
    child_progress: ChildProgress | dict | None = None
    reel_url: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.child_progress, dict):
            self.child_progress = ChildProgress(**self.child_progress)


class ProudParentLoop(BaseLoop):
    loop_id = ViralLoop.PROUD_PARENT
    name = "Proud Parent"
    description = "Share your child's progress with other parents"
    supported_personas = (Persona.PARENT,)
    fvm_type = FvmType.SESSION
    join_message = "Try a class sampler!"

    async def is_eligible(self, context: LoopContext) -> bool:
        if not self.validate_context(context):
            return False
        details = parse_details(ProudParentDetails, context.metadata)
        return bool(details.milestone_type) or details.child_progress is not None

    async def generate_invite(self, context: LoopContext, copy: PersonalizedCopy) -> LoopInvite:
        details = parse_details(ProudParentDetails, context.metadata)
        progress = details.child_progress

        link = self.create_smart_link(context, LinkContext(
            subject=(progress.subject if progress else None) or context.subject,
        ))

        detail = ""
        if progress is not None:
            if progress.improvement:
                detail += f"My child improved {progress.improvement:g}%! "
            if progress.achievements:
                detail += f"Earned {len(progress.achievements)} achievement(s)! "

        return await self.issue_invite(
            context,
            link,
            copy,
            detail,
            milestone_type=details.milestone_type,
            reel_url=details.reel_url,
        )

    def fvm_reward(self) -> LoopReward:
        return LoopReward(
            inviter_reward=RewardGrant(RewardType.CLASS_PASS, 1, "1 class pass for inviting another parent"),
            invitee_reward=RewardGrant(RewardType.CLASS_PASS, 1, "1 class pass to get started"),
        )
