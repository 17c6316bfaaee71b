"""
Unit tests for the personalization, orchestrator, trust & safety and experimentation agents.
"""

from datetime import datetime, timedelta, timezone

import pytest

from xfactor.agents.experimentation import ExperimentationAgent, ExperimentationRequest
from xfactor.agents.orchestrator import OrchestratorAgent, OrchestratorRequest
from xfactor.agents.personalization import (
    PersonalizationAgent,
    PersonalizationContext,
    PersonalizationRequest,
    personalization_context,
)
from xfactor.agents.trust_safety import TrustSafetyAgent, TrustSafetyRequest
from xfactor.core.types import Channel, Persona, RewardType, UserTrigger, ViralLoop


def minutes_ago(minutes):
    return (datetime.now(timezone.utc) - timedelta(minutes=minutes)).isoformat()


# ============================================================================
# Personalization
# ============================================================================


class TestPersonalizationAgent:
    @pytest.fixture
    def agent(self):
        return PersonalizationAgent()

    @pytest.mark.asyncio
    async def test_personalizes_copy_reward_and_channel(self, agent):
        request = PersonalizationRequest.new(
            agent_id="tests",
            user_id="student-1",
            context={"subject": "Algebra", "age": 15},
            persona=Persona.STUDENT,
            loop_id=ViralLoop.BUDDY_CHALLENGE,
        )

        response = await agent.process(request)

        assert response.success
        result = response.data
        assert "Algebra" in result.copy.headline
        assert result.copy.tone == "encouraging"
        assert result.reward.type == RewardType.STREAK_SHIELD
        assert result.channel == Channel.IN_APP
        assert result.variant in ("A", "B")
        assert "buddy_challenge" in response.rationale

    @pytest.mark.asyncio
    async def test_missing_loop_is_invalid(self, agent):
        request = PersonalizationRequest.new(agent_id="tests", user_id="u", persona=Persona.STUDENT)
        response = await agent.process(request)
        assert response.error.code == "INVALID_REQUEST"

    @pytest.mark.parametrize("age,tone", [(None, "encouraging"), (10, "supportive"), (15, "encouraging"), (19, "competitive")])
    def test_tone_by_age(self, age, tone):
        assert PersonalizationAgent.select_tone(age) == tone

    def test_loop_without_tone_falls_back_to_encouraging(self, agent):
        copy = agent.generate_copy(ViralLoop.PROUD_PARENT, PersonalizationContext(age=40, subject="Math"))
        assert copy.tone == "encouraging"

    def test_parents_get_class_pass(self, agent):
        reward = agent.select_reward(Persona.PARENT, ViralLoop.RESULTS_RALLY, PersonalizationContext())
        assert reward.type == RewardType.CLASS_PASS
        assert reward.amount == 1

    def test_loyalty_multiplier_is_capped(self, agent):
        some = agent.select_reward(Persona.STUDENT, ViralLoop.RESULTS_RALLY, PersonalizationContext(past_invites=5))
        many = agent.select_reward(Persona.STUDENT, ViralLoop.RESULTS_RALLY, PersonalizationContext(past_invites=50))
        assert some.amount == 75
        assert many.amount == 100
        assert many.description == "100 gems"

    def test_preferred_channel_wins(self):
        context = PersonalizationContext(preferred_channels=["carrier_pigeon", "sms"])
        assert PersonalizationAgent.select_channel(Persona.STUDENT, context) == Channel.SMS
        assert PersonalizationAgent.select_channel(Persona.TUTOR, PersonalizationContext()) == Channel.EMAIL

    def test_variant_is_stable(self):
        first = PersonalizationAgent.select_variant("user-1", ViralLoop.RESULTS_RALLY)
        assert first == PersonalizationAgent.select_variant("user-1", ViralLoop.RESULTS_RALLY)

    def test_context_filter_drops_unknown_and_unset(self):
        assert personalization_context({"subject": "Math", "age": None, "score": 90}) == {"subject": "Math"}


# ============================================================================
# Orchestrator
# ============================================================================


def orchestrator_request(trigger=UserTrigger.RESULTS_PAGE_VIEW, persona=Persona.STUDENT, **context):
    return OrchestratorRequest.new(
        agent_id="tests",
        user_id="student-1",
        context=context,
        trigger=trigger,
        persona=persona,
    )


class TestOrchestratorAgent:
    @pytest.fixture
    def agent(self):
        return OrchestratorAgent()

    @pytest.mark.asyncio
    async def test_results_page_selects_two_loops(self, agent):
        response = await agent.process(orchestrator_request(subject="Algebra"))

        assert response.success
        assert response.data.selected_loops == [ViralLoop.BUDDY_CHALLENGE, ViralLoop.RESULTS_RALLY]
        assert response.data.eligible

    @pytest.mark.asyncio
    async def test_recent_loops_are_skipped(self, agent):
        response = await agent.process(orchestrator_request(recent_loops=["buddy_challenge"]))
        assert response.data.selected_loops == [ViralLoop.RESULTS_RALLY]

    @pytest.mark.asyncio
    async def test_all_recent_keeps_candidates(self, agent):
        response = await agent.process(orchestrator_request(
            UserTrigger.STREAK_AT_RISK, recent_loops=["streak_rescue"],
        ))
        assert response.data.selected_loops == [ViralLoop.STREAK_RESCUE]

    @pytest.mark.asyncio
    async def test_unmapped_persona_selects_nothing(self, agent):
        response = await agent.process(orchestrator_request(UserTrigger.SESSION_RATED, Persona.STUDENT))
        assert response.success
        assert response.data.selected_loops == []
        assert "No loops selected" in response.rationale

    @pytest.mark.asyncio
    async def test_opted_out(self, agent):
        response = await agent.process(orchestrator_request(opted_out=True))
        assert not response.success
        assert response.error is None
        assert response.data.eligible is False

    @pytest.mark.asyncio
    async def test_daily_cap(self, agent):
        response = await agent.process(orchestrator_request(invite_count=5))
        assert not response.success
        assert response.data.throttled
        assert response.data.retry_after == 3600

    @pytest.mark.asyncio
    async def test_cooldown(self, agent):
        response = await agent.process(orchestrator_request(invite_count=1, last_invite_timestamp=minutes_ago(10)))
        assert response.data.throttled
        assert 0 < response.data.retry_after <= 50 * 60

    @pytest.mark.asyncio
    async def test_cooldown_elapsed(self, agent):
        response = await agent.process(orchestrator_request(invite_count=1, last_invite_timestamp=minutes_ago(90)))
        assert response.success

    @pytest.mark.asyncio
    async def test_missing_trigger_is_invalid(self, agent):
        request = OrchestratorRequest.new(agent_id="tests", user_id="u", persona=Persona.STUDENT)
        response = await agent.process(request)
        assert response.error.code == "INVALID_REQUEST"


# ============================================================================
# Trust & safety
# ============================================================================


def ts_request(action, user_id="user-1", **context):
    return TrustSafetyRequest.new(agent_id="tests", user_id=user_id, context=context, action=action)


class TestTrustSafetyAgent:
    @pytest.fixture
    def agent(self):
        return TrustSafetyAgent()

    @pytest.mark.asyncio
    async def test_clean_identity_is_allowed(self, agent):
        response = await agent.process(ts_request("check_fraud", email="a@test.com", device_id="dev-1"))
        assert response.success
        assert response.data.allowed
        assert response.data.risk_score == 0

    @pytest.mark.asyncio
    async def test_shared_device_is_fraud(self, agent):
        for i in range(3):
            await agent.process(ts_request("check_fraud", user_id=f"other-{i}", device_id="shared"))

        response = await agent.process(ts_request("check_fraud", user_id="new-user", device_id="shared"))

        assert response.data.allowed is False
        assert response.data.risk_score == 50
        assert "Fraud detected" in response.rationale

    @pytest.mark.asyncio
    async def test_reused_email_alone_is_below_threshold(self, agent):
        await agent.process(ts_request("check_fraud", user_id="first", email="Same@Test.com"))
        response = await agent.process(ts_request("check_fraud", user_id="second", email="same@test.com"))
        assert response.data.risk_score == 40
        assert response.data.allowed

    @pytest.mark.asyncio
    async def test_repeat_caller_is_not_a_duplicate_of_itself(self, agent):
        await agent.process(ts_request("check_duplicate", email="a@test.com"))
        response = await agent.process(ts_request("check_duplicate", email="a@test.com"))
        assert response.data.duplicate_detected is False

    @pytest.mark.asyncio
    async def test_duplicate_detected(self, agent):
        await agent.process(ts_request("check_duplicate", user_id="first", device_id="dev-9"))
        response = await agent.process(ts_request("check_duplicate", user_id="second", device_id="dev-9"))
        assert response.data.duplicate_detected

    @pytest.mark.asyncio
    async def test_coppa_redaction(self, agent):
        content = "my friend John Smith is at kid@example.com or 555-123-4567"
        response = await agent.process(ts_request("redact_pii", age=11, content=content))
        assert response.data.redacted_content == "my friend [NAME] is at [EMAIL] or [PHONE]"

    @pytest.mark.asyncio
    async def test_standard_redaction_only_masks_ssn(self, agent):
        content = "reach me at adult@example.com, ssn 123-45-6789"
        response = await agent.process(ts_request("redact_pii", age=30, content=content))
        assert response.data.redacted_content == "reach me at adult@example.com, ssn [SSN]"

    @pytest.mark.asyncio
    async def test_redaction_needs_content(self, agent):
        response = await agent.process(ts_request("redact_pii", age=10))
        assert response.error.code == "MISSING_CONTENT"

    @pytest.mark.asyncio
    async def test_rate_limit(self, agent):
        for _ in range(5):
            response = await agent.process(ts_request("rate_limit"))
            assert response.data.allowed

        response = await agent.process(ts_request("rate_limit"))

        assert response.data.rate_limited
        assert response.data.retry_after > 0

    @pytest.mark.asyncio
    async def test_report_and_undo(self, agent):
        reported = await agent.process(ts_request("report", action_type="spam"))
        report_id = reported.data.report_id

        undone = await agent.process(ts_request("undo", report_id=report_id))

        assert undone.success
        assert agent.get_report(report_id).resolved
        assert agent.get_report(report_id).reason == "spam"

    @pytest.mark.asyncio
    async def test_undo_errors(self, agent):
        missing = await agent.process(ts_request("undo"))
        unknown = await agent.process(ts_request("undo", report_id="nope"))
        assert missing.error.code == "MISSING_REPORT_ID"
        assert unknown.error.code == "REPORT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unknown_action(self, agent):
        response = await agent.process(ts_request("delete_everything"))
        assert response.error.code == "INVALID_ACTION"


# ============================================================================
# Experimentation
# ============================================================================


def exp_request(action, user_id="user-1", **context):
    return ExperimentationRequest.new(agent_id="tests", user_id=user_id, context=context, action=action)


class TestExperimentationAgent:
    @pytest.fixture
    def agent(self):
        return ExperimentationAgent()

    @pytest.mark.asyncio
    async def test_allocation_is_sticky_per_experiment(self, agent):
        first = await agent.process(exp_request("allocate", experiment_id="copy-test"))
        again = await agent.process(exp_request("allocate", experiment_id="copy-test"))

        assert first.data.variant in ("control", "treatment")
        assert again.data.variant == first.data.variant
        assert again.data.experiment_id == "copy-test"
        assert "already allocated" in again.rationale

    @pytest.mark.asyncio
    async def test_allocation_splits_users(self, agent):
        variants = set()
        for i in range(40):
            response = await agent.process(exp_request("allocate", user_id=f"user-{i}"))
            variants.add(response.data.variant)
        assert variants == {"control", "treatment"}

    @pytest.mark.asyncio
    async def test_treatment_share_bounds(self):
        everyone = ExperimentationAgent(treatment_share=1.0)
        nobody = ExperimentationAgent(treatment_share=0.0)

        assert (await everyone.process(exp_request("allocate"))).data.variant == "treatment"
        assert (await nobody.process(exp_request("allocate"))).data.variant == "control"

    @pytest.mark.asyncio
    async def test_log_event_requires_event_type(self, agent):
        response = await agent.process(exp_request("log_event", loop_id="buddy_challenge"))

        assert response.error.code == "MISSING_EVENT"
        assert agent.events == []

    @pytest.mark.asyncio
    async def test_calculate_k(self, agent):
        # Two inviters send three invites; two invitees reach FVM
        for user_id in ("a", "a", "b"):
            await agent.process(exp_request("log_event", user_id=user_id, event_type="loop_triggered", loop_id="buddy_challenge"))
        for user_id in ("x", "y"):
            await agent.process(exp_request("log_event", user_id=user_id, event_type="invite_opened", loop_id="buddy_challenge"))
            await agent.process(exp_request("log_event", user_id=user_id, event_type="FVM_reached", loop_id="buddy_challenge"))
        await agent.process(exp_request("log_event", user_id="c", event_type="loop_triggered", loop_id="results_rally"))

        response = await agent.process(exp_request("calculate_k", loop_id="buddy_challenge"))

        metrics = response.data.metrics
        assert (metrics.invites, metrics.inviters, metrics.joins, metrics.fvms) == (3, 2, 2, 2)
        assert metrics.invites_per_user == pytest.approx(1.5)
        assert metrics.conversion_rate == pytest.approx(2 / 3)
        assert response.data.k_factor == pytest.approx(1.0)
        assert "buddy_challenge" in response.rationale

    @pytest.mark.asyncio
    async def test_calculate_k_without_events_is_zero(self, agent):
        response = await agent.process(exp_request("calculate_k"))
        assert response.success
        assert response.data.k_factor == 0

    @pytest.mark.asyncio
    async def test_time_window_excludes_older_events(self, agent):
        await agent.process(exp_request("log_event", event_type="loop_triggered"))

        response = await agent.process(exp_request("calculate_k", start=(datetime.now(timezone.utc) + timedelta(minutes=1)).isoformat()))

        assert response.data.metrics.invites == 0

    @pytest.mark.asyncio
    async def test_guardrails(self, agent):
        for _ in range(99):
            await agent.process(exp_request("log_event", event_type="loop_triggered"))
        await agent.process(exp_request("log_event", event_type="support_ticket"))

        healthy = await agent.process(exp_request("check_guardrails"))
        await agent.process(exp_request("log_event", event_type="opt_out"))
        await agent.process(exp_request("log_event", event_type="opt_out"))
        violated = await agent.process(exp_request("check_guardrails"))

        assert healthy.data.guardrails.healthy
        assert healthy.data.guardrails.support_tickets == 1
        assert not violated.data.guardrails.healthy
        assert violated.data.guardrails.opt_out_rate > 0.01
        assert "violated" in violated.rationale

    @pytest.mark.asyncio
    async def test_unknown_action(self, agent):
        response = await agent.process(exp_request("rollback"))
        assert response.error.code == "INVALID_ACTION"
