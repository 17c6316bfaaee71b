"""
Parent Progress Reel.

From a tutor's session summary, compose a privacy-safe 20-30 second reel of
key moments and wins, then hand the parent a proud-parent referral.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field

from ..core.actions.base import AgenticActionContext, AgenticActionResult, BaseAgenticAction
from ..core.loops.base import LoopContext
from ..core.loops.executor import LoopExecutor
from ..core.types import Persona, ViralLoop

REEL_BASE_URL = "https://varsitytutors.com/reels"
MAX_KEY_MOMENTS = 5

SSN_RE = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
PHONE_RE = re.compile(r"\b\d{10}\b")
EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")


@dataclass
class ProgressReel:
    reel_id: str
    duration: int
    key_moments: list[str] = field(default_factory=list)
    achievements: list[str] = field(default_factory=list)
    privacy_safe: bool = True
    reel_url: str | None = None


def sanitize_for_privacy(text: str) -> str:
    text = SSN_RE.sub("[SSN]", text)
    text = PHONE_RE.sub("[PHONE]", text)
    return EMAIL_RE.sub("[EMAIL]", text)


class ParentProgressReelAction(BaseAgenticAction):
    action_id = "parent-progress-reel"
    name = "Parent Progress Reel + Invite"
    description = "Generate privacy-safe progress reel and parent invite"
    supported_personas = (Persona.TUTOR,)

    async def should_trigger(self, context: AgenticActionContext) -> bool:
        if not self.validate_context(context):
            return False
        summary = context.summary
        no_exam_pressure = summary.metadata.upcoming_exam is None
        return bool(summary.strengths) or (bool(summary.key_points) and no_exam_pressure)

    async def execute(self, context: AgenticActionContext, loop_executor: LoopExecutor) -> AgenticActionResult:
        reel = self.generate_progress_reel(context)
        subject = context.summary.metadata.subject

        # Parent to parent share; falls back to the tutor when no parent is attached
        parent_id = context.metadata.get("parent_id") or context.user_id
        result = await loop_executor.execute(ViralLoop.PROUD_PARENT, LoopContext(
            user_id=parent_id,
            persona=Persona.PARENT,
            subject=subject,
            metadata={
                "milestone_type": "progress_milestone",
                "child_progress": {
                    "subject": subject,
                    "improvement": self.estimate_improvement(context),
                    "achievements": reel.achievements,
                },
                "reel_url": reel.reel_url,
            },
        ))
        return self.result_from_loop(
            context,
            result,
            f"Generated {reel.duration}s privacy-safe progress reel with "
            f"{len(reel.key_moments)} key moments. Parent invite ready!",
        )

    def get_rationale(self, context: AgenticActionContext) -> str:
        summary = context.summary
        if not summary.strengths and not summary.key_points:
            return "No positive progress indicators - cannot generate progress reel"
        return (
            f"Session showed {len(summary.strengths)} strength(s) and {len(summary.key_points)} key point(s). "
            "Generating privacy-safe progress reel (20-30s) with key moments and achievements "
            "for parent to share with other parents."
        )

    @staticmethod
    def generate_progress_reel(context: AgenticActionContext) -> ProgressReel:
        summary = context.summary
        moments = [f"Showed {strength.lower()}" for strength in summary.strengths]
        moments += [sanitize_for_privacy(point) for point in summary.key_points]

        achievements = []
        if summary.strengths:
            achievements.append("Demonstrated Understanding")
        if summary.key_points:
            achievements.append("Active Participation")

        reel_id = str(uuid.uuid4())
        return ProgressReel(
            reel_id=reel_id,
            duration=min(30, max(20, len(moments) * 5)),
            key_moments=moments[:MAX_KEY_MOMENTS],
            achievements=achievements,
            reel_url=f"{REEL_BASE_URL}/{reel_id}",
        )

    @staticmethod
    def estimate_improvement(context: AgenticActionContext) -> int:
        """5% per strength, capped at 25%."""
        return min(25, len(context.summary.strengths) * 5)
