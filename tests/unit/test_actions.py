"""
Unit tests for the action orchestrator and the built-in agentic actions.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from xfactor.actions import (
    BeatMySkillChallengeAction,
    ParentProgressReelAction,
    PrepPackShareAction,
    StudyBuddyNudgeAction,
    create_default_actions,
)
from xfactor.actions.beat_my_skill_challenge import top_skill_gap
from xfactor.actions.parent_progress_reel import sanitize_for_privacy
from xfactor.actions.study_buddy_nudge import format_exam_date
from xfactor.core.actions.base import AgenticActionContext, AgenticActionResult, BaseAgenticAction
from xfactor.core.actions.orchestrator import ActionOrchestrator
from xfactor.core.types import Persona, ViralLoop
from xfactor.services.summary import SessionSummary, SkillGap, SummaryMetadata


class StubAction(BaseAgenticAction):
    """Configurable action that records what it was asked."""

    description = "Stub"

    def __init__(self, action_id, personas=(Persona.STUDENT,), trigger=True, raises=None, rationale="stub ran"):
        self.action_id = action_id
        self.name = action_id.title()
        self.supported_personas = personas
        self.trigger = trigger
        self.raises = raises
        self.rationale = rationale
        self.executed = 0

    async def should_trigger(self, context):
        return self.trigger

    async def execute(self, context, loop_executor):
        self.executed += 1
        if self.raises:
            raise self.raises
        return AgenticActionResult(
            success=True,
            action_id=self.action_id,
            action_type=self.action_id,
            rationale=self.rationale,
        )

    def get_rationale(self, context):
        return f"{self.action_id} rationale"


class SlowAction(StubAction):
    """Suspends mid-execution and records start and end in a shared log."""

    def __init__(self, action_id, log):
        super().__init__(action_id)
        self.log = log

    async def execute(self, context, loop_executor):
        self.log.append(f"{self.action_id}-start")
        await asyncio.sleep(0.01)
        self.log.append(f"{self.action_id}-end")
        return await super().execute(context, loop_executor)


@pytest.fixture
def tutor_summary():
    return SessionSummary(
        session_id="session-100",
        user_id="student-100",
        tutor_id="tutor-1",
        key_points=["Solved 3 stoichiometry problems", "Call me at 5551234567"],
        strengths=["Strong grasp of moles"],
        recommendations=["Balance equations daily"],
        metadata=SummaryMetadata(subject="Chemistry", topic="Stoichiometry"),
    )


def context_for(summary, persona=Persona.STUDENT, **metadata):
    return AgenticActionContext(
        summary=summary,
        user_id=summary.user_id,
        persona=persona,
        session_id=summary.session_id,
        metadata=metadata,
    )


# ============================================================================
# ActionOrchestrator
# ============================================================================


class TestActionOrchestrator:
    @pytest.mark.asyncio
    async def test_filters_by_persona(self, empty_summary):
        student_action = StubAction("student-only")
        tutor_action = StubAction("tutor-only", personas=(Persona.TUTOR,))
        orchestrator = ActionOrchestrator([student_action, tutor_action])

        results = await orchestrator.process_summary(
            empty_summary, "u1", Persona.STUDENT, "s1", MagicMock()
        )

        assert [r.action_id for r in results] == ["student-only"]
        assert tutor_action.executed == 0

    @pytest.mark.asyncio
    async def test_actions_run_one_at_a_time(self, empty_summary):
        log = []
        orchestrator = ActionOrchestrator([SlowAction("a", log), SlowAction("b", log)])

        results = await orchestrator.process_summary(empty_summary, "u1", Persona.STUDENT, "s1", MagicMock())

        assert log == ["a-start", "a-end", "b-start", "b-end"]
        assert [r.action_id for r in results] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_declined_actions_are_omitted(self, empty_summary):
        orchestrator = ActionOrchestrator([StubAction("no", trigger=False), StubAction("yes")])

        results = await orchestrator.process_summary(empty_summary, "u1", Persona.STUDENT, "s1", MagicMock())

        assert [r.action_id for r in results] == ["yes"]

    @pytest.mark.asyncio
    async def test_raising_action_does_not_stop_batch(self, empty_summary):
        orchestrator = ActionOrchestrator([
            StubAction("boom", raises=RuntimeError("kaput")),
            StubAction("after"),
        ])

        results = await orchestrator.process_summary(empty_summary, "u1", Persona.STUDENT, "s1", MagicMock())

        assert [r.action_id for r in results] == ["boom", "after"]
        assert not results[0].success
        assert results[0].error.code == "ACTION_ERROR"
        assert "kaput" in results[0].rationale
        assert results[1].success

    @pytest.mark.asyncio
    async def test_raising_should_trigger_is_isolated(self, empty_summary):
        flaky = StubAction("flaky")
        flaky.should_trigger = AsyncMock(side_effect=ValueError("bad summary"))
        orchestrator = ActionOrchestrator([flaky, StubAction("ok")])

        results = await orchestrator.process_summary(empty_summary, "u1", Persona.STUDENT, "s1", MagicMock())

        assert results[0].error.code == "ACTION_ERROR"
        assert results[1].success

    @pytest.mark.asyncio
    async def test_empty_rationale_is_filled(self, empty_summary):
        orchestrator = ActionOrchestrator([StubAction("quiet", rationale="")])

        results = await orchestrator.process_summary(empty_summary, "u1", Persona.STUDENT, "s1", MagicMock())

        assert results[0].rationale == "quiet rationale"
        assert results[0].latency_ms is not None

    @pytest.mark.asyncio
    async def test_no_actions_for_persona(self, empty_summary):
        orchestrator = ActionOrchestrator([StubAction("student-only")])
        results = await orchestrator.process_summary(empty_summary, "p1", Persona.PARENT, "s1", MagicMock())
        assert results == []

    def test_overwrite_keeps_position(self):
        replacement = StubAction("a")
        orchestrator = ActionOrchestrator([StubAction("a"), StubAction("b")])

        orchestrator.register_action(replacement)

        assert [a.action_id for a in orchestrator.get_all_actions()] == ["a", "b"]
        assert orchestrator.get_action("a") is replacement
        assert orchestrator.get_action("missing") is None

    def test_stats_for_default_actions(self):
        stats = ActionOrchestrator(create_default_actions()).get_stats()
        assert stats["total_actions"] == 4
        assert stats["actions_by_persona"] == {"student": 2, "tutor": 2}
        assert [a["id"] for a in stats["actions"]] == [
            "beat-my-skill-challenge",
            "study-buddy-nudge",
            "parent-progress-reel",
            "prep-pack-share",
        ]


# ============================================================================
# Student actions
# ============================================================================


class TestStudentActions:
    def test_top_skill_gap_prefers_high_priority(self, student_summary):
        assert top_skill_gap(student_summary.skill_gaps).skill == "factoring"
        assert top_skill_gap([]) is None

    @pytest.mark.asyncio
    async def test_beat_my_skill_ignores_low_priority(self):
        summary = SessionSummary(
            session_id="s",
            user_id="u",
            skill_gaps=[SkillGap(skill="fractions", subject="Math", priority="low")],
        )
        assert not await BeatMySkillChallengeAction().should_trigger(context_for(summary))

    @pytest.mark.asyncio
    async def test_beat_my_skill_runs_buddy_challenge(self, student_summary, loop_executor):
        action = BeatMySkillChallengeAction()
        context = context_for(student_summary)

        assert await action.should_trigger(context)
        result = await action.execute(context, loop_executor)

        assert result.success
        assert result.invite_generated
        assert result.viral_loop_triggered == ViralLoop.BUDDY_CHALLENGE
        assert result.invite_code
        assert "factoring" in result.message

    @pytest.mark.asyncio
    async def test_study_buddy_on_upcoming_exam(self, student_summary, loop_executor):
        action = StudyBuddyNudgeAction()
        context = context_for(student_summary)

        assert await action.should_trigger(context)
        result = await action.execute(context, loop_executor)

        assert result.success
        assert "Nov 02, 2026" in result.message
        assert "Factoring" in result.message

    @pytest.mark.asyncio
    async def test_study_buddy_on_stuck_concepts(self, loop_executor):
        summary = SessionSummary(
            session_id="s",
            user_id="u",
            metadata=SummaryMetadata(subject="Geometry", stuck_concepts=["proofs"]),
        )
        result = await StudyBuddyNudgeAction().execute(context_for(summary), loop_executor)
        assert result.message == "Stuck on proofs? Invite a study buddy to co-practice!"

    @pytest.mark.asyncio
    async def test_student_actions_decline_for_tutors(self, student_summary):
        context = context_for(student_summary, persona=Persona.TUTOR)
        assert not await StudyBuddyNudgeAction().should_trigger(context)

    def test_format_exam_date_passes_through_garbage(self):
        assert format_exam_date("next week") == "next week"


# ============================================================================
# Tutor actions
# ============================================================================


class TestTutorActions:
    def test_sanitize_for_privacy(self):
        text = "email kid@example.com or 5551234567, ssn 123-45-6789"
        assert sanitize_for_privacy(text) == "email [EMAIL] or [PHONE], ssn [SSN]"

    def test_progress_reel(self, tutor_summary):
        reel = ParentProgressReelAction.generate_progress_reel(context_for(tutor_summary, Persona.TUTOR))

        assert 20 <= reel.duration <= 30
        assert reel.key_moments[0] == "Showed strong grasp of moles"
        assert "Call me at [PHONE]" in reel.key_moments
        assert reel.achievements == ["Demonstrated Understanding", "Active Participation"]
        assert reel.reel_url.endswith(reel.reel_id)

    @pytest.mark.asyncio
    async def test_parent_reel_invites_as_parent(self, tutor_summary, loop_executor, event_bus):
        action = ParentProgressReelAction()
        context = context_for(tutor_summary, Persona.TUTOR, parent_id="parent-7")

        assert await action.should_trigger(context)
        result = await action.execute(context, loop_executor)

        assert result.success
        assert result.viral_loop_triggered == ViralLoop.PROUD_PARENT
        triggered = event_bus.get_history("loop_triggered")
        assert triggered[-1].payload["user_id"] == "parent-7"
        assert triggered[-1].payload["persona"] == "parent"

    @pytest.mark.asyncio
    async def test_prep_pack_share(self, tutor_summary, loop_executor):
        action = PrepPackShareAction()
        context = context_for(tutor_summary, Persona.TUTOR)

        assert await action.should_trigger(context)
        result = await action.execute(context, loop_executor)

        assert result.success
        assert result.viral_loop_triggered == ViralLoop.TUTOR_SPOTLIGHT
        assert "1 materials" in result.message

    @pytest.mark.asyncio
    async def test_prep_pack_without_invite_still_succeeds(self, tutor_summary):
        executor = MagicMock()
        executor.execute = AsyncMock(return_value=MagicMock(success=False, rationale="agent down"))

        result = await PrepPackShareAction().execute(context_for(tutor_summary, Persona.TUTOR), executor)

        assert result.success
        assert not result.invite_generated
        assert "agent down" in result.rationale

    def test_prep_pack_falls_back_to_session_review(self, empty_summary):
        pack = PrepPackShareAction.generate_prep_pack(context_for(empty_summary, Persona.TUTOR))
        assert [m.title for m in pack.materials] == ["Session Review"]
        assert pack.estimated_minutes == 10
