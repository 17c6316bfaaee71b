"""
Agent Client.

Dispatches requests to registered agents by name, with retry on raised
errors and a per-agent circuit breaker for graceful degradation.

No timeout is applied here; callers needing hard deadlines wrap the call
in ``asyncio.wait_for``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

from loguru import logger

from .agent_base import AgentRequest, AgentResponse, BaseAgent, ErrorDetail
from .events import utc_now_iso


@dataclass
class AgentClientConfig:
    max_retries: int = 3
    retry_delay_ms: int = 100
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout_ms: int = 60_000


@dataclass
class CircuitBreakerState:
    failures: int = 0
    last_failure_time: float = 0.0
    state: str = "closed"  # "closed", "open", "half-open"


class AgentClient:
    """Call agents with retry logic and a circuit breaker."""

    def __init__(self, config: AgentClientConfig | None = None):
        self.config = config or AgentClientConfig()
        self._agents: dict[str, BaseAgent] = {}
        self._breakers: dict[str, CircuitBreakerState] = {}

    def register_agent(self, agent: BaseAgent) -> None:
        """Register an agent under its configured name (resets its breaker)."""
        name = agent.get_metadata().name
        self._agents[name] = agent
        self._breakers[name] = CircuitBreakerState()

    def get_agent(self, name: str) -> BaseAgent | None:
        return self._agents.get(name)

    def list_agents(self) -> list[str]:
        return list(self._agents)

    async def call_agent(self, agent_name: str, request: AgentRequest) -> AgentResponse:
        """
        Call an agent by name.

        Returns:
            The agent's response, or a fallback response when the agent is
            unknown, its circuit is open, or every attempt raised.
        """
        agent = self._agents.get(agent_name)
        if agent is None:
            return self._fallback_response(request.request_id, f"Agent {agent_name} not found")

        breaker = self._breakers[agent_name]
        if breaker.state == "open":
            elapsed_ms = (time.monotonic() - breaker.last_failure_time) * 1000
            if elapsed_ms > self.config.circuit_breaker_timeout_ms:
                breaker.state = "half-open"
                logger.info("Circuit breaker half-open for agent {}", agent_name)
            else:
                return self._fallback_response(
                    request.request_id, f"Circuit breaker open for agent {agent_name}"
                )

        last_error: str | None = None
        for attempt in range(self.config.max_retries + 1):
            try:
                response = await agent.process(request)
            except Exception as e:
                last_error = str(e) or type(e).__name__
                logger.warning(
                    "Agent {} raised on attempt {}/{}: {}",
                    agent_name,
                    attempt + 1,
                    self.config.max_retries + 1,
                    last_error,
                )
                if attempt < self.config.max_retries:
                    await asyncio.sleep(self.config.retry_delay_ms * (attempt + 1) / 1000)
                continue

            if response.success or response.error is None:
                # A reasoned decline is a healthy answer
                breaker.failures = 0
                breaker.state = "closed"
                return response

            self._record_failure(agent_name, breaker)
            return response

        self._record_failure(agent_name, breaker)
        return self._fallback_response(
            request.request_id,
            f"Agent {agent_name} failed after {self.config.max_retries} retries: {last_error or 'Unknown error'}",
        )

    def _record_failure(self, agent_name: str, breaker: CircuitBreakerState) -> None:
        breaker.failures += 1
        breaker.last_failure_time = time.monotonic()
        if breaker.state == "half-open" or breaker.failures >= self.config.circuit_breaker_threshold:
            if breaker.state != "open":
                logger.warning("Circuit breaker opened for agent {}", agent_name)
            breaker.state = "open"

    def _fallback_response(self, request_id: str, reason: str) -> AgentResponse:
        return AgentResponse(
            request_id=request_id,
            timestamp=utc_now_iso(),
            success=False,
            rationale=f"Fallback response: {reason}. Using default behavior.",
            latency_ms=0.0,
            error=ErrorDetail("AGENT_UNAVAILABLE", reason),
        )

    async def get_agent_health(self, agent_name: str) -> dict[str, Any]:
        agent = self._agents.get(agent_name)
        if agent is None:
            return {"exists": False, "healthy": False, "circuit_breaker_state": "unknown"}

        breaker = self._breakers[agent_name]
        health = await agent.health_check()
        return {
            "exists": True,
            "healthy": health.healthy and breaker.state != "open",
            "circuit_breaker_state": breaker.state,
        }
