"""
Study Buddy Nudge.

When a summary shows an upcoming exam or a stuck concept, invite a friend
to co-practice the exact deck.
"""

from __future__ import annotations

from datetime import datetime

from ..core.actions.base import AgenticActionContext, AgenticActionResult, BaseAgenticAction
from ..core.loops.base import LoopContext
from ..core.loops.executor import LoopExecutor
from ..core.types import Persona, ViralLoop


def format_exam_date(value: str) -> str:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%b %d, %Y")
    except ValueError:
        return value


class StudyBuddyNudgeAction(BaseAgenticAction):
    action_id = "study-buddy-nudge"
    name = "Study Buddy Nudge"
    description = "Invite friend for co-practice before exam or on stuck concepts"
    supported_personas = (Persona.STUDENT,)

    async def should_trigger(self, context: AgenticActionContext) -> bool:
        if not self.validate_context(context):
            return False
        metadata = context.summary.metadata
        return metadata.upcoming_exam is not None or bool(metadata.stuck_concepts)

    async def execute(self, context: AgenticActionContext, loop_executor: LoopExecutor) -> AgenticActionResult:
        metadata = context.summary.metadata
        exam = metadata.upcoming_exam
        subject = metadata.subject or "General"

        if exam is not None:
            topic = exam.topics[0] if exam.topics else "exam preparation"
            subject = exam.subject
        elif metadata.stuck_concepts:
            topic = metadata.stuck_concepts[0]
        else:
            return AgenticActionResult(
                success=False,
                action_id=self.action_id,
                action_type=self.action_id,
                rationale=self.get_rationale(context),
                message="No exam or stuck concepts identified",
            )

        result = await loop_executor.execute(ViralLoop.BUDDY_CHALLENGE, LoopContext(
            user_id=context.user_id,
            persona=context.persona,
            subject=subject,
            metadata={
                "practice_subject": subject,
                "practice_skill": topic,
                "challenge_deck_id": f"practice-{subject}-{topic}".lower().replace(" ", "-")[:40],
                "co_practice": True,
                "exam_date": exam.date if exam else None,
            },
        ))

        if exam is not None:
            message = (
                f"Upcoming {subject} exam on {format_exam_date(exam.date)}. "
                f"Invite a study buddy to practice {topic}!"
            )
        else:
            message = f"Stuck on {topic}? Invite a study buddy to co-practice!"
        return self.result_from_loop(context, result, message)

    def get_rationale(self, context: AgenticActionContext) -> str:
        metadata = context.summary.metadata
        if metadata.upcoming_exam is not None:
            exam = metadata.upcoming_exam
            return (
                f"Upcoming {exam.subject} exam on {format_exam_date(exam.date)}. "
                "Generating co-practice invite to help student prepare with a study buddy."
            )
        if metadata.stuck_concepts:
            return (
                f"Student identified as stuck on: {', '.join(metadata.stuck_concepts)}. "
                "Generating co-practice invite to help them work through concepts with a friend."
            )
        return "No exam or stuck concepts identified - cannot generate study buddy invite"
