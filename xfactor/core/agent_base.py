"""
Agent Protocol.

Shared request/response contract for every decision-making unit
(loop orchestration, personalization, trust & safety, future agents).

Every response carries a human-readable rationale and a measured latency.
Agents declare an SLA (``max_latency_ms``); exceeding it is logged, never enforced.

Usage:
    class MyAgent(BaseAgent):
        def __init__(self):
            super().__init__(AgentConfig(name="my-agent", version="1.0.0", max_latency_ms=100))

        async def handle(self, request: AgentRequest) -> AgentResponse:
            return self.create_response(request.request_id, True, "Nothing to do")
"""

from __future__ import annotations

import dataclasses
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from .events import utc_now_iso

REQUIRED_REQUEST_FIELDS = ("agent_id", "request_id", "timestamp", "user_id")


def new_request_id() -> str:
    """Generate a new request ID."""
    return str(uuid.uuid4())


@dataclass
class ErrorDetail:
    """Structured error carried inside a result; never raised."""

    code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


@dataclass
class AgentRequest:
    """
    Base request for all agents.

    The four identity fields are mandatory for processing but default to empty
    so that a malformed request can be represented and rejected with an error
    response instead of failing at construction.
    """

    agent_id: str = ""
    request_id: str = ""
    timestamp: str = ""
    user_id: str = ""
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(
        cls,
        agent_id: str,
        user_id: str,
        context: dict[str, Any] | None = None,
        **fields: Any,
    ):
        """Build a request with a fresh request ID and timestamp."""
        return cls(
            agent_id=agent_id,
            request_id=new_request_id(),
            timestamp=utc_now_iso(),
            user_id=user_id,
            context=dict(context or {}),
            **fields,
        )


@dataclass
class AgentResponse:
    """Standardized agent response with decision rationale."""

    request_id: str
    timestamp: str
    success: bool
    rationale: str
    latency_ms: float
    features_used: list[str] = field(default_factory=list)
    confidence: float | None = None
    error: ErrorDetail | None = None
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        data = self.data
        if dataclasses.is_dataclass(data) and not isinstance(data, type):
            data = dataclasses.asdict(data)
        return {
            "request_id": self.request_id,
            "timestamp": self.timestamp,
            "success": self.success,
            "rationale": self.rationale,
            "latency_ms": self.latency_ms,
            "features_used": list(self.features_used),
            "confidence": self.confidence,
            "error": self.error.to_dict() if self.error else None,
            "data": data,
        }


@dataclass
class AgentConfig:
    """Static description of an agent and its SLA."""

    name: str
    version: str
    max_latency_ms: float
    enable_caching: bool = False
    fallback_enabled: bool = True


@dataclass
class HealthStatus:
    healthy: bool
    latency_ms: float


class BaseAgent(ABC):
    """
    Base class for all agents.

    ``process`` is the protocol entry point: it times the call, validates the
    mandatory request fields, delegates to ``handle`` and converts any raised
    exception into an error response. Subclasses implement ``handle``.
    """

    def __init__(self, config: AgentConfig):
        self.config = config
        self._start_time = time.perf_counter()

    @property
    def name(self) -> str:
        return self.config.name

    async def process(self, request: AgentRequest) -> AgentResponse:
        """
        Process a request and return a response with rationale.

        Args:
            request: Agent request (or subclass)

        Returns:
            AgentResponse; never raises for malformed input or handler errors
        """
        start = time.perf_counter()
        response = await self._dispatch(request)
        response.latency_ms = round((time.perf_counter() - start) * 1000, 3)
        if response.latency_ms > self.config.max_latency_ms:
            logger.warning(
                "Agent {} exceeded SLA: {}ms > {}ms",
                self.config.name,
                response.latency_ms,
                self.config.max_latency_ms,
            )
        return response

    async def _dispatch(self, request: AgentRequest) -> AgentResponse:
        missing = self.missing_fields(request)
        if missing:
            return self.create_error_response(
                getattr(request, "request_id", "") or "",
                ErrorDetail("INVALID_REQUEST", "Request validation failed"),
                f"Request missing required fields: {', '.join(missing)}",
            )

        try:
            return await self.handle(request)
        except Exception as e:
            logger.exception("Agent {} failed processing request {}", self.config.name, request.request_id)
            return self.create_error_response(
                request.request_id,
                ErrorDetail("PROCESSING_ERROR", str(e) or type(e).__name__),
                f"Error in {self.config.name}: {e!r}",
            )

    @abstractmethod
    async def handle(self, request: AgentRequest) -> AgentResponse:
        """Agent-specific work for an already validated request."""
        ...

    @staticmethod
    def missing_fields(request: AgentRequest) -> list[str]:
        """Names of mandatory request fields that are absent or empty."""
        return [name for name in REQUIRED_REQUEST_FIELDS if not getattr(request, name, None)]

    def validate_request(self, request: AgentRequest) -> bool:
        """Validate request structure."""
        return not self.missing_fields(request)

    def create_response(
        self,
        request_id: str,
        success: bool,
        rationale: str,
        *,
        features_used: list[str] | None = None,
        confidence: float | None = None,
        error: ErrorDetail | None = None,
        data: Any = None,
    ) -> AgentResponse:
        """
        Create a standardized response, measuring latency since ``start_timing``.

        ``process`` overwrites the latency with the duration of its own call.
        """
        latency_ms = round((time.perf_counter() - self._start_time) * 1000, 3)

        if not rationale or not rationale.strip():
            logger.warning("Agent {} produced an empty rationale", self.config.name)
            rationale = f"{self.config.name} returned {'success' if success else 'failure'} without explanation"

        return AgentResponse(
            request_id=request_id,
            timestamp=utc_now_iso(),
            success=success,
            rationale=rationale,
            latency_ms=latency_ms,
            features_used=list(features_used or []),
            confidence=confidence,
            error=error,
            data=data,
        )

    def create_error_response(
        self,
        request_id: str,
        error: ErrorDetail,
        rationale: str,
    ) -> AgentResponse:
        """Create error response with rationale."""
        return self.create_response(request_id, False, rationale, error=error)

    def start_timing(self) -> None:
        """Start timing for latency tracking."""
        self._start_time = time.perf_counter()

    def generate_request_id(self) -> str:
        return new_request_id()

    async def health_check(self) -> HealthStatus:
        """Health check for monitoring. Subclasses may override."""
        start = time.perf_counter()
        return HealthStatus(healthy=True, latency_ms=round((time.perf_counter() - start) * 1000, 3))

    def get_metadata(self) -> AgentConfig:
        return dataclasses.replace(self.config)
