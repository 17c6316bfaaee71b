"""
Integration tests for the full trigger-to-invite pipeline.

Wires the real agents, loops and actions through build_pipeline and drives
them the way a host application would.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from loguru import logger
from typer.testing import CliRunner

from xfactor.agents.orchestrator import LoopSelection
from xfactor.cli import app
from xfactor.config import Settings
from xfactor.core.agent_base import AgentConfig, BaseAgent
from xfactor.core.loops.base import LoopContext
from xfactor.core.types import ALL_EVENTS, EventType, Persona, UserTrigger, ViralLoop
from xfactor.pipeline import TriggerContext, build_pipeline
from xfactor.services.summary import SessionSummary, SummaryMetadata


class FixedSelectionAgent(BaseAgent):
    """Stands in for the orchestrator and always selects the same loops."""

    def __init__(self, loops):
        super().__init__(AgentConfig(name="orchestrator", version="test", max_latency_ms=1000))
        self.loops = loops

    async def handle(self, request):
        return self.create_response(request.request_id, True, "Fixed selection", data=LoopSelection(selected_loops=self.loops))


@pytest.fixture
def pipeline():
    return build_pipeline(Settings(agent_retry_delay_ms=0, smart_link_secret="integration"))


def student_context(**overrides):
    values = {"subject": "Algebra", "age": 15, "grade": "10", "email": "student@test.com"}
    values.update(overrides)
    return TriggerContext(**values)


def event_types(pipeline):
    return [event.event_type for event in pipeline.event_bus.get_history()]


# ============================================================================
# Raw triggers
# ============================================================================


class TestProcessTrigger:
    @pytest.mark.asyncio
    async def test_results_page_view_generates_invite(self, pipeline):
        results = await pipeline.process_trigger(
            "student-123", UserTrigger.RESULTS_PAGE_VIEW, Persona.STUDENT, student_context()
        )

        successes = [r for r in results if r.success]
        assert successes
        invite = successes[0].invite
        assert invite.short_code
        assert invite.link.startswith("https://varsitytutors.com/")

        types = event_types(pipeline)
        assert types[0] == EventType.TRIGGER_RECEIVED.value
        assert EventType.INVITE_SENT.value in types
        assert EventType.LOOP_EXECUTED.value in types

    @pytest.mark.asyncio
    async def test_score_enables_results_rally(self, pipeline):
        results = await pipeline.process_trigger(
            "student-124", UserTrigger.RESULTS_PAGE_VIEW, Persona.STUDENT, student_context(score=92, percentile=88)
        )

        assert [r.loop_id for r in results] == [ViralLoop.BUDDY_CHALLENGE, ViralLoop.RESULTS_RALLY]
        assert all(r.success for r in results)
        assert "88th percentile" in results[1].invite.message

    @pytest.mark.asyncio
    async def test_ineligible_loop_publishes_invite_failed(self, pipeline):
        results = await pipeline.process_trigger(
            "student-125", UserTrigger.RESULTS_PAGE_VIEW, Persona.STUDENT, student_context()
        )

        rally = results[1]
        assert rally.loop_id == ViralLoop.RESULTS_RALLY
        assert rally.error.code == "NOT_ELIGIBLE"
        failed = pipeline.event_bus.get_history(EventType.INVITE_FAILED)
        assert failed[0].payload["loop_id"] == "results_rally"

    @pytest.mark.asyncio
    async def test_reused_device_is_vetoed(self, pipeline):
        for i in range(3):
            await pipeline.process_trigger(
                f"user-{i}",
                UserTrigger.SESSION_COMPLETE,
                Persona.STUDENT,
                student_context(email=f"user{i}@test.com", device_id="shared-device"),
            )
        pipeline.event_bus.clear_history()

        results = await pipeline.process_trigger(
            "user-new",
            UserTrigger.SESSION_COMPLETE,
            Persona.STUDENT,
            student_context(email="new@test.com", device_id="shared-device"),
        )

        assert not any(r.success for r in results)
        fraud = pipeline.event_bus.get_history(EventType.FRAUD_DETECTED)
        assert len(fraud) == 1
        assert fraud[0].payload["user_id"] == "user-new"
        assert EventType.INVITE_SENT.value not in event_types(pipeline)

    @pytest.mark.asyncio
    async def test_gate_fails_closed_without_trust_safety(self, pipeline):
        pipeline.agent_client._agents.pop("trust-safety")

        results = await pipeline.process_trigger(
            "student-126", UserTrigger.SESSION_COMPLETE, Persona.STUDENT, student_context()
        )

        assert results == []
        assert EventType.LOOP_EXECUTED.value not in event_types(pipeline)

    @pytest.mark.asyncio
    async def test_opted_out_user_gets_nothing(self, pipeline):
        results = await pipeline.process_trigger(
            "student-127", UserTrigger.SESSION_COMPLETE, Persona.STUDENT, student_context(opted_out=True)
        )
        assert results == []

    @pytest.mark.asyncio
    async def test_streak_at_risk(self, pipeline):
        expires = (datetime.now(timezone.utc) + timedelta(hours=6)).isoformat()
        results = await pipeline.process_trigger(
            "student-128",
            UserTrigger.STREAK_AT_RISK,
            Persona.STUDENT,
            student_context(metadata={"current_streak": 12, "streak_expires_at": expires}),
        )

        assert results[0].success
        assert "12-day streak" in results[0].invite.message

    @pytest.mark.asyncio
    async def test_tutor_session_rated(self, pipeline):
        results = await pipeline.process_trigger(
            "tutor-1",
            UserTrigger.SESSION_RATED,
            Persona.TUTOR,
            TriggerContext(subject="Physics", metadata={"session_rating": 5}),
        )
        assert results[0].loop_id == ViralLoop.TUTOR_SPOTLIGHT
        assert results[0].success

    @pytest.mark.asyncio
    async def test_never_raises(self, pipeline):
        pipeline.loop_executor.execute = AsyncMock(side_effect=RuntimeError("executor exploded"))

        results = await pipeline.process_trigger(
            "student-129", UserTrigger.SESSION_COMPLETE, Persona.STUDENT, student_context()
        )

        assert results == []
        errors = pipeline.event_bus.get_history(EventType.PIPELINE_ERROR)
        assert errors[0].payload["stage"] == "process_trigger"
        assert "executor exploded" in errors[0].payload["error"]

    @pytest.mark.asyncio
    async def test_wildcard_sees_every_event(self, pipeline):
        seen = []
        pipeline.event_bus.subscribe(ALL_EVENTS, lambda event: seen.append(event.event_type))

        await pipeline.process_trigger("student-130", UserTrigger.SESSION_COMPLETE, Persona.STUDENT, student_context())

        assert seen == event_types(pipeline)

    @pytest.mark.asyncio
    async def test_selected_loops_outside_registry_or_persona_are_skipped(self, pipeline):
        pipeline.agent_client.register_agent(
            FixedSelectionAgent([ViralLoop.TUTOR_SPOTLIGHT, "class_watch_party"])
        )
        pipeline.loop_executor.execute = AsyncMock()
        warnings = []
        sink = logger.add(lambda message: warnings.append(message.record["message"]), level="WARNING")
        try:
            results = await pipeline.process_trigger(
                "student-131", UserTrigger.SESSION_COMPLETE, Persona.STUDENT, student_context()
            )
        finally:
            logger.remove(sink)

        assert results == []
        pipeline.loop_executor.execute.assert_not_awaited()
        assert EventType.LOOP_EXECUTED.value not in event_types(pipeline)
        assert any("tutor_spotlight" in w.lower() and "unsupported persona student" in w for w in warnings)
        assert any("unregistered loop class_watch_party" in w for w in warnings)


# ============================================================================
# Joins and FVM
# ============================================================================


class TestInviteLifecycle:
    @pytest.mark.asyncio
    async def test_join_then_fvm(self, pipeline):
        results = await pipeline.process_trigger(
            "student-200", UserTrigger.SESSION_COMPLETE, Persona.STUDENT, student_context()
        )
        code = results[0].invite.short_code
        friend = LoopContext(user_id="friend-200", persona=Persona.STUDENT)

        joined = await pipeline.process_join(code, friend)
        fvm = await pipeline.process_fvm(code, friend)

        assert joined.success
        assert fvm.success
        assert fvm.reward.fvm_required
        assert pipeline.event_bus.get_history(EventType.INVITE_OPENED)
        assert pipeline.event_bus.get_history(EventType.FVM_REACHED)[0].payload["referrer_id"] == "student-200"

    @pytest.mark.asyncio
    async def test_k_factor_tracks_the_lifecycle(self, pipeline):
        results = await pipeline.process_trigger(
            "student-201", UserTrigger.SESSION_COMPLETE, Persona.STUDENT, student_context()
        )
        code = results[0].invite.short_code
        assert pipeline.smart_links.get_link_stats(code)["clicks"] == 0

        friend = LoopContext(user_id="friend-201", persona=Persona.STUDENT)
        await pipeline.process_join(code, friend)
        await pipeline.process_fvm(code, friend)

        overall = await pipeline.get_k_factor()
        rally = await pipeline.get_k_factor(ViralLoop.RESULTS_RALLY)

        assert overall.metrics.invites == len(results)
        assert overall.metrics.joins == 1
        assert overall.metrics.fvms == 1
        assert overall.k_factor > 0
        assert rally.metrics.invites == 0

    @pytest.mark.asyncio
    async def test_unknown_code(self, pipeline):
        result = await pipeline.process_join("ZZZZZZZZ", LoopContext(user_id="x", persona=Persona.STUDENT))
        assert result.error.code == "LOOP_NOT_FOUND"


# ============================================================================
# Session summaries
# ============================================================================


class TestProcessSummary:
    @pytest.mark.asyncio
    async def test_student_summary(self, pipeline, student_summary):
        results = await pipeline.process_summary(
            student_summary, "student-001", Persona.STUDENT, "session-001", student_context()
        )

        assert [r.action_id for r in results] == ["beat-my-skill-challenge", "study-buddy-nudge"]
        assert all(r.success and r.invite_generated for r in results)
        assert all(r.rationale for r in results)
        assert len(pipeline.event_bus.get_history(EventType.ACTION_EVALUATED)) == 2

    @pytest.mark.asyncio
    async def test_tutor_summary(self, pipeline):
        summary = SessionSummary(
            session_id="session-300",
            user_id="student-300",
            tutor_id="tutor-300",
            key_points=["Balanced redox equations"],
            strengths=["Careful reasoning"],
            next_steps=[],
            recommendations=["Review oxidation states"],
            metadata=SummaryMetadata(subject="Chemistry", topic="Redox"),
        )

        results = await pipeline.process_summary(
            summary,
            "tutor-300",
            Persona.TUTOR,
            "session-300",
            TriggerContext(subject="Chemistry", metadata={"parent_id": "parent-300"}),
        )

        assert [r.action_id for r in results] == ["parent-progress-reel", "prep-pack-share"]
        assert results[0].viral_loop_triggered == ViralLoop.PROUD_PARENT
        assert results[1].viral_loop_triggered == ViralLoop.TUTOR_SPOTLIGHT

    @pytest.mark.asyncio
    async def test_parent_has_no_actions(self, pipeline, student_summary):
        results = await pipeline.process_summary(student_summary, "parent-1", Persona.PARENT, "session-001")
        assert results == []

    @pytest.mark.asyncio
    async def test_summary_errors_are_contained(self, pipeline, student_summary):
        pipeline.action_orchestrator.process_summary = AsyncMock(side_effect=KeyError("boom"))

        results = await pipeline.process_summary(student_summary, "student-001", Persona.STUDENT, "session-001")

        assert results == []
        assert pipeline.event_bus.get_history(EventType.PIPELINE_ERROR)[0].payload["stage"] == "process_summary"


# ============================================================================
# Reports, stats and CLI
# ============================================================================


class TestOperations:
    @pytest.mark.asyncio
    async def test_report_abuse(self, pipeline):
        report_id = await pipeline.report_abuse("student-400", "spam_invites")

        assert report_id
        event = pipeline.event_bus.get_history(EventType.ABUSE_REPORT)[0]
        assert event.payload["report_id"] == report_id
        assert event.payload["reason"] == "spam_invites"

    @pytest.mark.asyncio
    async def test_stats(self, pipeline):
        stats = await pipeline.get_stats()

        assert stats["loops"]["total_loops"] == 5
        assert stats["actions"]["total_actions"] == 4
        assert set(stats["agents"]) == {"orchestrator", "personalization", "trust-safety", "experimentation"}
        assert all(agent["healthy"] for agent in stats["agents"].values())

    def test_cli_stats(self):
        result = CliRunner().invoke(app, ["stats"])
        assert result.exit_code == 0
        assert "buddy_challenge" in result.output

    def test_cli_trigger(self):
        result = CliRunner().invoke(
            app,
            ["trigger", "session_complete", "--subject", "Algebra", "--age", "15", "--events"],
        )
        assert result.exit_code == 0
        assert "session_complete" in result.output
        assert "Events" in result.output
