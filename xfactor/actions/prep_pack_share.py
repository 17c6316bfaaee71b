"""
Next-Session Prep Pack Share.

Builds a prep pack from a session's next steps and recommendations and
gives the tutor a class sampler link to share. Joins credit the tutor.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Literal

from ..core.actions.base import AgenticActionContext, AgenticActionResult, BaseAgenticAction
from ..core.events import utc_now_iso
from ..core.loops.base import LoopContext
from ..core.loops.executor import LoopExecutor
from ..core.types import Persona, ViralLoop

CONTENT_BASE_URL = "https://varsitytutors.com"
MINUTES_PER_MATERIAL = 10


@dataclass
class PrepMaterial:
    type: Literal["reading", "video", "practice", "worksheet"]
    title: str
    description: str
    url: str | None = None


@dataclass
class PrepPack:
    pack_id: str
    session_id: str
    materials: list[PrepMaterial] = field(default_factory=list)
    next_session_topic: str | None = None
    estimated_minutes: int = 0
    generated_at: str = field(default_factory=utc_now_iso)


class PrepPackShareAction(BaseAgenticAction):
    action_id = "prep-pack-share"
    name = "Next-Session Prep Pack Share"
    description = "Generate prep pack and class sampler for tutor to share"
    supported_personas = (Persona.TUTOR,)

    async def should_trigger(self, context: AgenticActionContext) -> bool:
        if not self.validate_context(context):
            return False
        return bool(context.summary.next_steps) or bool(context.summary.recommendations)

    async def execute(self, context: AgenticActionContext, loop_executor: LoopExecutor) -> AgenticActionResult:
        pack = self.generate_prep_pack(context)
        result = await loop_executor.execute(ViralLoop.TUTOR_SPOTLIGHT, LoopContext(
            user_id=context.user_id,
            persona=context.persona,
            subject=context.summary.metadata.subject,
            metadata={
                "prep_pack_id": pack.pack_id,
                "next_session_topic": pack.next_session_topic,
                "session_id": context.session_id,
            },
        ))

        if result.success:
            return self.result_from_loop(
                context,
                result,
                f"Generated prep pack with {len(pack.materials)} materials ({pack.estimated_minutes} min). "
                "Class sampler invite ready for tutor to share!",
            )

        # The pack is still useful without an invite
        return AgenticActionResult(
            success=True,
            action_id=self.action_id,
            action_type=self.action_id,
            rationale=f"{self.get_rationale(context)} Invite not generated: {result.rationale}",
            invite_generated=False,
            message=(
                f"Generated prep pack with {len(pack.materials)} materials. "
                "Tutor can share class sampler link manually."
            ),
        )

    def get_rationale(self, context: AgenticActionContext) -> str:
        steps = context.summary.next_steps
        recommendations = context.summary.recommendations
        if not steps and not recommendations:
            return "No next steps or recommendations - cannot generate prep pack"
        return (
            f"Session identified {len(steps)} next step(s) and {len(recommendations)} recommendation(s). "
            "Generating prep pack for next session and class sampler link for tutor to share "
            "with peers/parents. Referrals will credit tutor XP."
        )

    @staticmethod
    def generate_prep_pack(context: AgenticActionContext) -> PrepPack:
        pack_id = str(uuid.uuid4())
        materials = [
            PrepMaterial(
                type="practice",
                title=f"Practice: {rec[:50]}",
                description=rec,
                url=f"{CONTENT_BASE_URL}/practice/{pack_id}-{index}",
            )
            for index, rec in enumerate(context.summary.recommendations)
        ]
        materials += [
            PrepMaterial(
                type="reading",
                title=step.action,
                description=f"Priority: {step.priority}",
                url=f"{CONTENT_BASE_URL}/resources/{pack_id}-{index}",
            )
            for index, step in enumerate(context.summary.next_steps)
        ]
        if not materials:
            materials.append(PrepMaterial(
                type="reading",
                title="Session Review",
                description="Review key concepts from today's session",
                url=f"{CONTENT_BASE_URL}/review/{pack_id}",
            ))

        return PrepPack(
            pack_id=pack_id,
            session_id=context.session_id,
            materials=materials,
            next_session_topic=context.summary.metadata.topic,
            estimated_minutes=len(materials) * MINUTES_PER_MATERIAL,
        )
