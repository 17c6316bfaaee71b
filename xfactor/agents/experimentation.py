"""
Experimentation Agent.

Sticky A/B allocation, a log of loop lifecycle events, K-factor
calculation and guardrail checks over the logged events. All state is in memory.
"""

from __future__ import annotations

import hashlib
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone

from ..core.agent_base import AgentConfig, AgentRequest, AgentResponse, BaseAgent, ErrorDetail
from ..core.loops.base import parse_details
from ..core.types import EventType
from .orchestrator import parse_timestamp

ACTIONS = ("allocate", "log_event", "calculate_k", "check_guardrails")

K_FACTOR_TARGET = 1.2

# Logged event types that count as a sent invite
INVITE_EVENTS = (EventType.LOOP_TRIGGERED.value, EventType.INVITE_SENT.value)

# Guardrail event type -> maximum tolerated share of logged events
GUARDRAIL_RATES = {
    "complaint_filed": 0.01,
    "opt_out": 0.01,
    EventType.FRAUD_DETECTED.value: 0.005,
}
GUARDRAIL_SUPPORT_EVENT = "support_ticket"
MAX_SUPPORT_TICKETS = 100


@dataclass
class ExperimentationContext:
    experiment_id: str = "default"
    event_type: str | None = None
    loop_id: str | None = None
    invite_code: str | None = None
    persona: str | None = None
    start: str | None = None
    end: str | None = None


@dataclass
class ExperimentationRequest(AgentRequest):
    action: str = ""


@dataclass
class LoggedEvent:
    event_type: str
    user_id: str
    timestamp: datetime
    loop_id: str | None = None
    invite_code: str | None = None
    persona: str | None = None


@dataclass
class KFactorMetrics:
    invites: int
    inviters: int
    joins: int
    fvms: int
    invites_per_user: float
    join_rate: float
    conversion_rate: float


@dataclass
class GuardrailReport:
    complaint_rate: float
    opt_out_rate: float
    fraud_rate: float
    support_tickets: int
    healthy: bool


@dataclass
class ExperimentationResult:
    experiment_id: str | None = None
    variant: str | None = None
    k_factor: float | None = None
    metrics: KFactorMetrics | None = None
    guardrails: GuardrailReport | None = None


class ExperimentationAgent(BaseAgent):
    """
    Measure viral loops.

    ``log_event`` is fed by the loop executor on trigger, join and FVM.
    ``calculate_k`` reads those events back:

        K = (invites / unique inviters) * (FVMs / invites)

    optionally narrowed to one loop and an ISO-8601 ``start``/``end`` window.
    """

    def __init__(
        self,
        treatment_share: float = 0.5,
        max_events: int = 10_000,
        max_latency_ms: float = 150,
    ):
        super().__init__(AgentConfig(
            name="experimentation",
            version="1.0.0",
            max_latency_ms=max_latency_ms,
            enable_caching=True,
        ))
        self.treatment_share = treatment_share
        self._events: deque[LoggedEvent] = deque(maxlen=max_events)
        self._allocations: dict[str, dict[str, str]] = {}

    @property
    def events(self) -> list[LoggedEvent]:
        return list(self._events)

    async def handle(self, request: AgentRequest) -> AgentResponse:
        action = getattr(request, "action", "")
        context = parse_details(ExperimentationContext, request.context)

        if action == "allocate":
            return self.allocate(request, context)
        if action == "log_event":
            return self.log_event(request, context)
        if action == "calculate_k":
            return self.calculate_k(request, context)
        if action == "check_guardrails":
            return self.check_guardrails(request, context)

        return self.create_error_response(
            request.request_id,
            ErrorDetail("INVALID_ACTION", f"Unknown action: {action!r}"),
            f"Invalid experimentation action: {action!r}. Expected one of {', '.join(ACTIONS)}",
        )

    def allocate(self, request: AgentRequest, context: ExperimentationContext) -> AgentResponse:
        experiment_id = context.experiment_id
        allocations = self._allocations.setdefault(experiment_id, {})
        existing = allocations.get(request.user_id)
        if existing is not None:
            return self.create_response(
                request.request_id,
                True,
                f"User already allocated to {existing} in experiment {experiment_id}",
                data=ExperimentationResult(experiment_id=experiment_id, variant=existing),
                confidence=1.0,
                features_used=["user_id", "experiment_id", "existing_allocation"],
            )

        variant = self.hash_allocate(request.user_id, experiment_id)
        allocations[request.user_id] = variant
        return self.create_response(
            request.request_id,
            True,
            f"Allocated user to {variant} group in experiment {experiment_id}",
            data=ExperimentationResult(experiment_id=experiment_id, variant=variant),
            confidence=1.0,
            features_used=["user_id", "experiment_id", "hash_allocation"],
        )

    def hash_allocate(self, user_id: str, experiment_id: str) -> str:
        digest = hashlib.sha256(f"{user_id}:{experiment_id}".encode("utf-8")).digest()
        bucket = int.from_bytes(digest[:2], "big") % 100
        return "treatment" if bucket < self.treatment_share * 100 else "control"

    def log_event(self, request: AgentRequest, context: ExperimentationContext) -> AgentResponse:
        if not context.event_type:
            return self.create_error_response(
                request.request_id,
                ErrorDetail("MISSING_EVENT", "event_type is required"),
                "Event data missing from request context",
            )

        self._events.append(LoggedEvent(
            event_type=context.event_type,
            user_id=request.user_id,
            timestamp=datetime.now(timezone.utc),
            loop_id=context.loop_id,
            invite_code=context.invite_code,
            persona=context.persona,
        ))
        return self.create_response(
            request.request_id,
            True,
            f"Logged event {context.event_type} for user {request.user_id}",
            confidence=1.0,
            features_used=["event_type", "user_id", "loop_id"],
        )

    def calculate_k(self, request: AgentRequest, context: ExperimentationContext) -> AgentResponse:
        events = self._select(context, by_loop=True)

        inviting = [e for e in events if e.event_type in INVITE_EVENTS]
        invites = len(inviting)
        inviters = len({e.user_id for e in inviting})
        joins = sum(1 for e in events if e.event_type == EventType.INVITE_OPENED.value)
        fvms = sum(1 for e in events if e.event_type == EventType.FVM_REACHED.value)

        invites_per_user = invites / max(inviters, 1)
        conversion_rate = fvms / invites if invites else 0.0
        k_factor = invites_per_user * conversion_rate
        metrics = KFactorMetrics(
            invites=invites,
            inviters=inviters,
            joins=joins,
            fvms=fvms,
            invites_per_user=invites_per_user,
            join_rate=joins / invites if invites else 0.0,
            conversion_rate=conversion_rate,
        )

        scope = f"loop {context.loop_id}" if context.loop_id else "all loops"
        return self.create_response(
            request.request_id,
            True,
            f"K-factor for {scope}: {k_factor:.2f} (target {K_FACTOR_TARGET:.2f}). "
            f"Invites/user: {invites_per_user:.2f}, conversion: {conversion_rate * 100:.1f}%",
            data=ExperimentationResult(k_factor=k_factor, metrics=metrics),
            confidence=0.85,
            features_used=["invite_events", "join_events", "fvm_events", "loop_id", "time_range"],
        )

    def check_guardrails(self, request: AgentRequest, context: ExperimentationContext) -> AgentResponse:
        events = self._select(context, by_loop=False)
        total = len(events)

        def rate(event_type: str) -> float:
            if not total:
                return 0.0
            return sum(1 for e in events if e.event_type == event_type) / total

        rates = {event_type: rate(event_type) for event_type in GUARDRAIL_RATES}
        support_tickets = sum(1 for e in events if e.event_type == GUARDRAIL_SUPPORT_EVENT)
        healthy = support_tickets <= MAX_SUPPORT_TICKETS and all(
            rates[event_type] <= limit for event_type, limit in GUARDRAIL_RATES.items()
        )
        report = GuardrailReport(
            complaint_rate=rates["complaint_filed"],
            opt_out_rate=rates["opt_out"],
            fraud_rate=rates[EventType.FRAUD_DETECTED.value],
            support_tickets=support_tickets,
            healthy=healthy,
        )

        return self.create_response(
            request.request_id,
            True,
            f"Guardrails {'healthy' if healthy else 'violated'}: "
            f"complaints {report.complaint_rate * 100:.2f}%, opt-outs {report.opt_out_rate * 100:.2f}%, "
            f"fraud {report.fraud_rate * 100:.2f}%, support tickets {support_tickets}",
            data=ExperimentationResult(guardrails=report),
            confidence=0.9,
            features_used=["complaint_events", "opt_out_events", "fraud_events", "support_events", "time_range"],
        )

    def _select(self, context: ExperimentationContext, by_loop: bool) -> list[LoggedEvent]:
        start = parse_timestamp(context.start) if context.start else None
        end = parse_timestamp(context.end) if context.end else None
        return [
            e for e in self._events
            if (not by_loop or context.loop_id is None or e.loop_id == context.loop_id)
            and (start is None or e.timestamp >= start)
            and (end is None or e.timestamp <= end)
        ]
