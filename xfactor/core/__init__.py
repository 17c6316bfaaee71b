"""
Core building blocks shared by every component.

- types: Persona, UserTrigger, ViralLoop, EventType and friends
- events: ViralEvent and the EventBus
- agent_base: the agent protocol (requests, responses, BaseAgent)
- agent_client: named agent dispatch with retry and circuit breaker
"""

from .agent_base import AgentConfig, AgentRequest, AgentResponse, BaseAgent, ErrorDetail, HealthStatus
from .agent_client import AgentClient, AgentClientConfig
from .events import EventBus, ViralEvent
from .types import ALL_EVENTS, Channel, EventType, FvmType, Persona, RewardType, UserTrigger, ViralLoop

__all__ = [
    # Types
    "Persona",
    "UserTrigger",
    "ViralLoop",
    "EventType",
    "RewardType",
    "Channel",
    "FvmType",
    "ALL_EVENTS",
    # Events
    "EventBus",
    "ViralEvent",
    # Agent protocol
    "AgentRequest",
    "AgentResponse",
    "AgentConfig",
    "ErrorDetail",
    "HealthStatus",
    "BaseAgent",
    "AgentClient",
    "AgentClientConfig",
]
