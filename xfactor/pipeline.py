"""
Trigger Pipeline.

Composition root for the viral growth core. Routes a raw user trigger or a
session summary through the trust & safety gate, loop selection and loop
execution, publishing one event per transition on the shared event bus.

Usage:
    pipeline = build_pipeline()
    results = await pipeline.process_trigger(
        "student-1",
        UserTrigger.RESULTS_PAGE_VIEW,
        Persona.STUDENT,
        TriggerContext(subject="Algebra", age=15, grade="10"),
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from .actions import create_default_actions
from .agents import (
    ExperimentationAgent,
    ExperimentationRequest,
    ExperimentationResult,
    OrchestratorAgent,
    OrchestratorRequest,
    PersonalizationAgent,
    TrustSafetyAgent,
    TrustSafetyRequest,
)
from .config import Settings, get_settings
from .core.actions.base import AgenticActionResult
from .core.actions.orchestrator import ActionOrchestrator
from .core.agent_client import AgentClient, AgentClientConfig
from .core.events import EventBus, ViralEvent
from .core.loops.base import LoopContext
from .core.loops.executor import ExecuteLoopResult, LoopExecutor
from .core.loops.registry import LoopRegistry
from .core.types import EventType, Persona, UserTrigger, ViralLoop
from .services.smart_links import SmartLinkService
from .services.summary import SessionSummary

PIPELINE_AGENT_ID = "trigger-pipeline"


@dataclass
class TriggerContext:
    """
    Everything a caller knows about the user and the moment of the trigger.

    Identity signals feed the trust & safety gate, invite history feeds
    throttling, and ``metadata`` carries loop-specific details (for example
    ``current_streak`` or ``milestone_type``).
    """

    subject: str | None = None
    age: int | None = None
    grade: str | None = None

    # Identity signals
    email: str | None = None
    device_id: str | None = None
    ip_address: str | None = None

    # Results
    score: float | None = None
    percentile: float | None = None
    result_type: str | None = None

    # Invite history and preferences
    recent_loops: list[str] = field(default_factory=list)
    invite_count: int = 0
    last_invite_timestamp: str | None = None
    opted_out: bool = False
    past_invites: int = 0
    preferred_channels: list[str] = field(default_factory=list)

    metadata: dict[str, Any] = field(default_factory=dict)

    def identity(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in (
                ("email", self.email),
                ("device_id", self.device_id),
                ("ip_address", self.ip_address),
                ("age", self.age),
            )
            if value is not None
        }

    def orchestrator_context(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "age": self.age,
            "grade": self.grade,
            "recent_loops": list(self.recent_loops),
            "invite_count": self.invite_count,
            "last_invite_timestamp": self.last_invite_timestamp,
            "opted_out": self.opted_out,
        }

    def loop_context(self, user_id: str, persona: Persona, trigger: UserTrigger | None = None) -> LoopContext:
        metadata: dict[str, Any] = {
            "past_invites": self.past_invites,
            "preferred_channels": list(self.preferred_channels),
        }
        if self.score is not None:
            metadata["score"] = self.score
            metadata["practice_score"] = self.score
        if self.percentile is not None:
            metadata["percentile"] = self.percentile

        result_type = self.result_type
        if result_type is None and trigger == UserTrigger.RESULTS_PAGE_VIEW and self.score is not None:
            result_type = "practice_test"
        if result_type is not None:
            metadata["result_type"] = result_type

        metadata.update(self.metadata)
        return LoopContext(
            user_id=user_id,
            persona=persona,
            subject=self.subject,
            age=self.age,
            grade=self.grade,
            metadata=metadata,
        )


class TriggerPipeline:
    """
    Route triggers and summaries to loops and agentic actions.

    Neither ``process_trigger`` nor ``process_summary`` raises: an unexpected
    error is published as ``pipeline_error`` and the results gathered so far
    are returned.
    """

    def __init__(
        self,
        event_bus: EventBus,
        registry: LoopRegistry,
        loop_executor: LoopExecutor,
        action_orchestrator: ActionOrchestrator,
        agent_client: AgentClient,
        smart_links: SmartLinkService,
    ):
        self.event_bus = event_bus
        self.registry = registry
        self.loop_executor = loop_executor
        self.action_orchestrator = action_orchestrator
        self.agent_client = agent_client
        self.smart_links = smart_links

    async def process_trigger(
        self,
        user_id: str,
        trigger: UserTrigger,
        persona: Persona,
        context: TriggerContext | None = None,
    ) -> list[ExecuteLoopResult]:
        """
        Run one raw trigger through gate, loop selection and loop execution.

        Args:
            user_id: Acting user
            trigger: Domain event that happened
            persona: Acting user's persona
            context: Caller-supplied context

        Returns:
            One result per executed loop, in selection order; empty when the
            gate vetoes or no loop is selected
        """
        context = context or TriggerContext()
        results: list[ExecuteLoopResult] = []

        try:
            await self._publish(EventType.TRIGGER_RECEIVED, {
                "user_id": user_id,
                "trigger": trigger.value,
                "persona": persona.value,
            })

            if not await self._passes_gate(user_id, context):
                return results

            for loop_id in await self._select_loops(user_id, trigger, persona, context):
                result = await self.loop_executor.execute(loop_id, context.loop_context(user_id, persona, trigger))
                results.append(result)
                await self._record_loop_result(user_id, result)

            return results
        except Exception as e:
            await self._pipeline_error(user_id, "process_trigger", e)
            return results

    async def process_summary(
        self,
        summary: SessionSummary,
        user_id: str,
        persona: Persona,
        session_id: str,
        context: TriggerContext | None = None,
    ) -> list[AgenticActionResult]:
        """Run a session summary through the gate and the agentic actions."""
        context = context or TriggerContext()
        results: list[AgenticActionResult] = []

        try:
            await self._publish(EventType.TRIGGER_RECEIVED, {
                "user_id": user_id,
                "trigger": "session_summary",
                "persona": persona.value,
                "session_id": session_id,
            })

            if not await self._passes_gate(user_id, context):
                return results

            results = await self.action_orchestrator.process_summary(
                summary,
                user_id,
                persona,
                session_id,
                self.loop_executor,
                metadata=context.metadata,
            )

            for result in results:
                await self._publish(EventType.ACTION_EVALUATED, {
                    "user_id": user_id,
                    "session_id": session_id,
                    **result.to_dict(),
                })
                if result.invite_generated:
                    await self._count_invite(user_id)

            return results
        except Exception as e:
            await self._pipeline_error(user_id, "process_summary", e)
            return results

    async def process_join(self, invite_code: str, invitee: LoopContext) -> ExecuteLoopResult:
        return await self.loop_executor.process_join(invite_code, invitee)

    async def process_fvm(self, invite_code: str, invitee: LoopContext) -> ExecuteLoopResult:
        return await self.loop_executor.process_fvm(invite_code, invitee)

    async def report_abuse(self, user_id: str, reason: str) -> str | None:
        """File an abuse report; returns the report id, or None if the report was not filed."""
        response = await self.agent_client.call_agent("trust-safety", TrustSafetyRequest.new(
            agent_id=PIPELINE_AGENT_ID,
            user_id=user_id,
            context={"action_type": reason},
            action="report",
        ))
        if not response.success or response.data is None:
            logger.warning("Abuse report for {} not filed: {}", user_id, response.rationale)
            return None

        await self._publish(EventType.ABUSE_REPORT, {
            "user_id": user_id,
            "report_id": response.data.report_id,
            "reason": reason,
        })
        return response.data.report_id

    async def get_k_factor(self, loop_id: ViralLoop | str | None = None) -> ExperimentationResult | None:
        """K-factor over the lifecycle events logged so far, for one loop or all of them."""
        context = {"loop_id": getattr(loop_id, "value", loop_id)} if loop_id is not None else {}
        response = await self.agent_client.call_agent("experimentation", ExperimentationRequest.new(
            agent_id=PIPELINE_AGENT_ID,
            user_id=PIPELINE_AGENT_ID,
            context=context,
            action="calculate_k",
        ))
        if not response.success:
            logger.warning("K-factor unavailable: {}", response.rationale)
            return None
        return response.data

    async def get_stats(self) -> dict[str, Any]:
        return {
            "loops": self.registry.get_stats(),
            "actions": self.action_orchestrator.get_stats(),
            "agents": {
                name: await self.agent_client.get_agent_health(name)
                for name in self.agent_client.list_agents()
            },
            "events": len(self.event_bus.get_history()),
        }

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _passes_gate(self, user_id: str, context: TriggerContext) -> bool:
        """Trust & safety check before any loop runs. Fails closed."""
        response = await self.agent_client.call_agent("trust-safety", TrustSafetyRequest.new(
            agent_id=PIPELINE_AGENT_ID,
            user_id=user_id,
            context=context.identity(),
            action="check_fraud",
        ))

        if not response.success or response.data is None:
            logger.warning("Trust & safety unavailable for {}; blocking invites: {}", user_id, response.rationale)
            return False

        if not response.data.allowed:
            logger.warning("Trust & safety veto for {}: {}", user_id, response.rationale)
            await self._publish(EventType.FRAUD_DETECTED, {
                "user_id": user_id,
                "risk_score": response.data.risk_score,
                "reason": response.data.reason,
            })
            return False

        return True

    async def _select_loops(
        self,
        user_id: str,
        trigger: UserTrigger,
        persona: Persona,
        context: TriggerContext,
    ) -> list[ViralLoop]:
        response = await self.agent_client.call_agent("orchestrator", OrchestratorRequest.new(
            agent_id=PIPELINE_AGENT_ID,
            user_id=user_id,
            context=context.orchestrator_context(),
            trigger=trigger,
            persona=persona,
        ))

        if not response.success or response.data is None:
            if response.error is not None:
                logger.warning("Orchestrator failed for {}: {}", user_id, response.rationale)
            else:
                logger.info("No loops for {}: {}", user_id, response.rationale)
            return []

        selected = []
        for loop_id in response.data.selected_loops:
            loop = self.registry.get(loop_id)
            if loop is None:
                logger.warning("Orchestrator selected unregistered loop {}", loop_id)
                continue
            if not loop.supports(persona):
                logger.warning("Orchestrator selected {} for unsupported persona {}", loop_id, persona.value)
                continue
            selected.append(loop.loop_id)
        return selected

    async def _record_loop_result(self, user_id: str, result: ExecuteLoopResult) -> None:
        await self._publish(EventType.LOOP_EXECUTED, {"user_id": user_id, **result.to_dict()})

        if result.success and result.invite is not None:
            await self._count_invite(user_id)
        else:
            await self._publish(EventType.INVITE_FAILED, {
                "user_id": user_id,
                "loop_id": result.to_dict()["loop_id"],
                "reason": result.error.message if result.error else result.rationale,
            })

    async def _count_invite(self, user_id: str) -> None:
        """Count a generated invite against the user's daily cap."""
        await self.agent_client.call_agent("trust-safety", TrustSafetyRequest.new(
            agent_id=PIPELINE_AGENT_ID,
            user_id=user_id,
            action="rate_limit",
        ))

    async def _pipeline_error(self, user_id: str, stage: str, error: Exception) -> None:
        logger.exception("Pipeline {} failed for {}", stage, user_id)
        try:
            await self._publish(EventType.PIPELINE_ERROR, {
                "user_id": user_id,
                "stage": stage,
                "error": str(error) or type(error).__name__,
            })
        except Exception:
            logger.exception("Could not publish pipeline error for {}", user_id)

    async def _publish(self, event_type: EventType, payload: dict[str, Any]) -> None:
        await self.event_bus.publish(ViralEvent.create(event_type, payload))


def build_pipeline(settings: Settings | None = None) -> TriggerPipeline:
    """
    Wire the default system: one event bus, link service, agent client with
    the decision and experimentation agents, loop registry, executor and action orchestrator.
    """
    settings = settings or get_settings()

    event_bus = EventBus(max_history_size=settings.event_history_size)
    smart_links = SmartLinkService(
        secret=settings.smart_link_secret,
        short_code_length=settings.short_code_length,
        expiry_days=settings.link_expiry_days,
    )

    agent_client = AgentClient(AgentClientConfig(
        max_retries=settings.agent_max_retries,
        retry_delay_ms=settings.agent_retry_delay_ms,
        circuit_breaker_threshold=settings.circuit_breaker_threshold,
        circuit_breaker_timeout_ms=settings.circuit_breaker_timeout_ms,
    ))
    agent_client.register_agent(OrchestratorAgent(
        max_invites_per_day=settings.max_invites_per_day,
        cooldown_minutes=settings.invite_cooldown_minutes,
        max_loops_per_trigger=settings.max_loops_per_trigger,
    ))
    agent_client.register_agent(PersonalizationAgent())
    agent_client.register_agent(TrustSafetyAgent(
        max_invites_per_day=settings.max_invites_per_day,
        max_accounts_per_device=settings.max_accounts_per_device,
        fraud_risk_threshold=settings.fraud_risk_threshold,
    ))
    agent_client.register_agent(ExperimentationAgent(max_events=settings.event_history_size))

    registry = LoopRegistry.with_default_loops(smart_links, event_bus=event_bus, base_url=settings.base_url)
    loop_executor = LoopExecutor(registry, agent_client, event_bus=event_bus, smart_links=smart_links)

    return TriggerPipeline(
        event_bus=event_bus,
        registry=registry,
        loop_executor=loop_executor,
        action_orchestrator=ActionOrchestrator(create_default_actions()),
        agent_client=agent_client,
        smart_links=smart_links,
    )
