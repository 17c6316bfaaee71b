"""
Trust & Safety Agent.

Fraud scoring, COPPA-aware PII redaction, duplicate device/email checks,
invite rate limits and report/undo handling. All state is in memory.
"""

from __future__ import annotations

import math
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..core.agent_base import AgentConfig, AgentRequest, AgentResponse, BaseAgent, ErrorDetail
from ..core.loops.base import parse_details

MIN_AGE_COPPA = 13

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_RE = re.compile(r"\b\d{3}-\d{3}-\d{4}\b")
NAME_RE = re.compile(r"\b[A-Z][a-z]+ [A-Z][a-z]+\b")
SSN_RE = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")

ACTIONS = ("check_fraud", "redact_pii", "check_duplicate", "rate_limit", "report", "undo")


@dataclass
class TrustSafetyContext:
    email: str | None = None
    device_id: str | None = None
    ip_address: str | None = None
    age: int | None = None
    content: str | None = None
    action_type: str | None = None
    report_id: str | None = None


@dataclass
class TrustSafetyRequest(AgentRequest):
    action: str = ""


@dataclass
class TrustSafetyResult:
    allowed: bool | None = None
    risk_score: int | None = None
    redacted_content: str | None = None
    duplicate_detected: bool | None = None
    rate_limited: bool | None = None
    retry_after: int | None = None
    report_id: str | None = None
    reason: str | None = None


@dataclass
class RateLimitState:
    invites: int = 0
    last_reset: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class AbuseReport:
    user_id: str
    reason: str
    timestamp: datetime
    resolved: bool = False


class TrustSafetyAgent(BaseAgent):
    """
    Abuse guardrails for invite generation.

    ``check_fraud`` scores a caller's identity signals:
      device already linked to ``max_accounts_per_device`` other accounts: +50
      email already linked to another account: +40
      daily invite cap reached: +20
    and reports fraud when the score reaches ``fraud_risk_threshold``. The
    caller's device and email are recorded after scoring.
    """

    def __init__(
        self,
        max_invites_per_day: int = 5,
        max_accounts_per_device: int = 3,
        fraud_risk_threshold: int = 50,
        max_latency_ms: float = 150,
    ):
        super().__init__(AgentConfig(
            name="trust-safety",
            version="1.0.0",
            max_latency_ms=max_latency_ms,
            enable_caching=True,
        ))
        self.max_invites_per_day = max_invites_per_day
        self.max_accounts_per_device = max_accounts_per_device
        self.fraud_risk_threshold = fraud_risk_threshold

        self._device_history: dict[str, set[str]] = {}
        self._email_history: dict[str, set[str]] = {}
        self._rate_limits: dict[str, RateLimitState] = {}
        self._reports: dict[str, AbuseReport] = {}

    async def handle(self, request: AgentRequest) -> AgentResponse:
        action = getattr(request, "action", "")
        context = parse_details(TrustSafetyContext, request.context)

        if action == "check_fraud":
            return self.check_fraud(request, context)
        if action == "redact_pii":
            return self.redact_pii(request, context)
        if action == "check_duplicate":
            return self.check_duplicate(request, context)
        if action == "rate_limit":
            return self.check_rate_limit(request)
        if action == "report":
            return self.report_abuse(request, context)
        if action == "undo":
            return self.undo_action(request, context)

        return self.create_error_response(
            request.request_id,
            ErrorDetail("INVALID_ACTION", f"Unknown action: {action!r}"),
            f"Invalid trust & safety action: {action!r}. Expected one of {', '.join(ACTIONS)}",
        )

    # ==========================================================================
    # Fraud and duplicates
    # ==========================================================================

    def check_fraud(self, request: AgentRequest, context: TrustSafetyContext) -> AgentResponse:
        user_id = request.user_id
        risk_score = 0
        reasons: list[str] = []

        if context.device_id:
            others = self._device_history.get(context.device_id, set()) - {user_id}
            if len(others) >= self.max_accounts_per_device:
                risk_score += 50
                reasons.append(f"Device used by {len(others)} other accounts")

        if context.email:
            others = self._email_history.get(context.email.lower(), set()) - {user_id}
            if others:
                risk_score += 40
                reasons.append(f"Email used by {len(others)} other account(s)")

        if self._rate_limit(user_id).invites >= self.max_invites_per_day:
            risk_score += 20
            reasons.append("Daily invite limit reached")

        self._record_identity(user_id, context)

        is_fraud = risk_score >= self.fraud_risk_threshold
        reason = "; ".join(reasons) or None
        return self.create_response(
            request.request_id,
            True,
            f"Fraud detected: {reason}" if is_fraud else f"No fraud patterns detected (risk score {risk_score})",
            data=TrustSafetyResult(allowed=not is_fraud, risk_score=risk_score, reason=reason),
            confidence=0.85,
            features_used=["device_id", "email", "rate_limits", "duplicate_detection"],
        )

    def check_duplicate(self, request: AgentRequest, context: TrustSafetyContext) -> AgentResponse:
        user_id = request.user_id
        reasons: list[str] = []

        if context.email:
            users = self._email_history.get(context.email.lower(), set())
            if users and user_id not in users:
                reasons.append(f"Email already used by {len(users)} account(s)")

        if context.device_id:
            users = self._device_history.get(context.device_id, set())
            if users and user_id not in users:
                reasons.append(f"Device already used by {len(users)} account(s)")

        self._record_identity(user_id, context)

        duplicate = bool(reasons)
        reason = "; ".join(reasons) or None
        return self.create_response(
            request.request_id,
            True,
            f"Duplicate detected: {reason}" if duplicate else "No duplicate accounts detected",
            data=TrustSafetyResult(duplicate_detected=duplicate, reason=reason),
            confidence=0.95,
            features_used=["email", "device_id", "duplicate_detection"],
        )

    def _record_identity(self, user_id: str, context: TrustSafetyContext) -> None:
        if context.email:
            self._email_history.setdefault(context.email.lower(), set()).add(user_id)
        if context.device_id:
            self._device_history.setdefault(context.device_id, set()).add(user_id)

    # ==========================================================================
    # Redaction
    # ==========================================================================

    def redact_pii(self, request: AgentRequest, context: TrustSafetyContext) -> AgentResponse:
        if not context.content:
            return self.create_error_response(
                request.request_id,
                ErrorDetail("MISSING_CONTENT", "Content required for redaction"),
                "Content is required for PII redaction",
            )

        coppa = context.age is not None and context.age < MIN_AGE_COPPA
        redacted = context.content
        if coppa:
            redacted = EMAIL_RE.sub("[EMAIL]", redacted)
            redacted = PHONE_RE.sub("[PHONE]", redacted)
            redacted = NAME_RE.sub("[NAME]", redacted)
        else:
            redacted = SSN_RE.sub("[SSN]", redacted)

        return self.create_response(
            request.request_id,
            True,
            "PII redaction completed. "
            + ("COPPA-compliant redaction applied." if coppa else "Standard redaction applied."),
            data=TrustSafetyResult(redacted_content=redacted),
            confidence=0.9,
            features_used=["content", "age", "coppa_compliance"],
        )

    # ==========================================================================
    # Rate limits
    # ==========================================================================

    def _rate_limit(self, user_id: str) -> RateLimitState:
        state = self._rate_limits.setdefault(user_id, RateLimitState())
        now = datetime.now(timezone.utc)
        if (now - state.last_reset).total_seconds() >= 24 * 3600:
            state.invites = 0
            state.last_reset = now
        return state

    def check_rate_limit(self, request: AgentRequest) -> AgentResponse:
        """Count one invite against the user's daily cap unless it is already reached."""
        state = self._rate_limit(request.user_id)
        limited = state.invites >= self.max_invites_per_day
        retry_after = None
        if limited:
            elapsed = (datetime.now(timezone.utc) - state.last_reset).total_seconds()
            retry_after = max(0, math.ceil(24 * 3600 - elapsed))
        else:
            state.invites += 1

        if limited:
            rationale = (
                f"Rate limit reached. {state.invites}/{self.max_invites_per_day} invites today. "
                f"Retry after {math.ceil(retry_after / 3600)} hours."
            )
        else:
            rationale = f"Rate limit OK. {state.invites}/{self.max_invites_per_day} invites today."

        return self.create_response(
            request.request_id,
            True,
            rationale,
            data=TrustSafetyResult(allowed=not limited, rate_limited=limited, retry_after=retry_after),
            confidence=1.0,
            features_used=["user_id", "rate_limits", "time_tracking"],
        )

    # ==========================================================================
    # Reports
    # ==========================================================================

    def report_abuse(self, request: AgentRequest, context: TrustSafetyContext) -> AgentResponse:
        report_id = str(uuid.uuid4())
        reason = context.action_type or "abuse_reported"
        self._reports[report_id] = AbuseReport(
            user_id=request.user_id,
            reason=reason,
            timestamp=datetime.now(timezone.utc),
        )
        return self.create_response(
            request.request_id,
            True,
            f"Abuse report filed: {report_id}. Reason: {reason}",
            data=TrustSafetyResult(report_id=report_id, reason=reason),
            confidence=1.0,
            features_used=["user_id", "report_type"],
        )

    def undo_action(self, request: AgentRequest, context: TrustSafetyContext) -> AgentResponse:
        if not context.report_id:
            return self.create_error_response(
                request.request_id,
                ErrorDetail("MISSING_REPORT_ID", "Report ID required"),
                "Report ID is required to undo action",
            )

        report = self._reports.get(context.report_id)
        if report is None:
            return self.create_error_response(
                request.request_id,
                ErrorDetail("REPORT_NOT_FOUND", "Report not found"),
                f"Report {context.report_id} not found",
            )

        report.resolved = True
        return self.create_response(
            request.request_id,
            True,
            f"Action undone for report {context.report_id}",
            data=TrustSafetyResult(report_id=context.report_id),
            confidence=1.0,
            features_used=["report_id"],
        )

    def get_report(self, report_id: str) -> AbuseReport | None:
        return self._reports.get(report_id)
