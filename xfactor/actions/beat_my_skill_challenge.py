"""
Beat-My-Skill Challenge.

Turns the top skill gap in a student's session summary into a 5-question
challenge deck and invites a friend through the buddy challenge loop.
"""

from __future__ import annotations

from ..core.actions.base import AgenticActionContext, AgenticActionResult, BaseAgenticAction
from ..core.loops.base import LoopContext
from ..core.loops.executor import LoopExecutor
from ..core.types import Persona, ViralLoop
from ..services.summary import PRIORITY_ORDER, SkillGap


def top_skill_gap(gaps: list[SkillGap]) -> SkillGap | None:
    if not gaps:
        return None
    return max(gaps, key=lambda gap: PRIORITY_ORDER.get(gap.priority, 0))


class BeatMySkillChallengeAction(BaseAgenticAction):
    action_id = "beat-my-skill-challenge"
    name = "Beat-My-Skill Challenge"
    description = "Generate challenge deck from skill gaps and invite friend"
    supported_personas = (Persona.STUDENT,)

    async def should_trigger(self, context: AgenticActionContext) -> bool:
        if not self.validate_context(context):
            return False
        return any(gap.priority in ("high", "medium") for gap in context.summary.skill_gaps)

    async def execute(self, context: AgenticActionContext, loop_executor: LoopExecutor) -> AgenticActionResult:
        gap = top_skill_gap(context.summary.skill_gaps)
        if gap is None:
            return AgenticActionResult(
                success=False,
                action_id=self.action_id,
                action_type=self.action_id,
                rationale=self.get_rationale(context),
                message="No skill gaps identified in summary",
            )

        deck_id = f"challenge-{gap.subject}-{gap.skill}".lower().replace(" ", "-")[:40]
        result = await loop_executor.execute(ViralLoop.BUDDY_CHALLENGE, LoopContext(
            user_id=context.user_id,
            persona=context.persona,
            subject=gap.subject,
            metadata={
                "practice_subject": gap.subject,
                "practice_skill": gap.skill,
                "challenge_deck_id": deck_id,
            },
        ))
        return self.result_from_loop(
            context,
            result,
            f"Generated {gap.skill} challenge deck with 5 questions. Invite ready to share!",
        )

    def get_rationale(self, context: AgenticActionContext) -> str:
        gaps = context.summary.skill_gaps
        if not gaps:
            return "No skill gaps identified - cannot generate challenge"

        high = sum(1 for gap in gaps if gap.priority == "high")
        return (
            f"Identified {len(gaps)} skill gap(s) ({high} high priority). "
            f'Generating challenge deck for "{top_skill_gap(gaps).skill}" '
            "to help student practice while inviting friends."
        )
