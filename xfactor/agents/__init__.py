"""
Decision agents.

Every agent implements the agent protocol in ``xfactor.core.agent_base``:
- OrchestratorAgent: picks loops for a raw trigger, with throttling
- PersonalizationAgent: copy, reward and channel per persona and loop
- TrustSafetyAgent: fraud, duplicate, rate-limit and redaction guardrails
- ExperimentationAgent: A/B allocation, event log, K-factor and guardrail metrics
"""

from .experimentation import (
    ExperimentationAgent,
    ExperimentationContext,
    ExperimentationRequest,
    ExperimentationResult,
    GuardrailReport,
    KFactorMetrics,
)
from .orchestrator import LoopSelection, OrchestratorAgent, OrchestratorContext, OrchestratorRequest
from .personalization import (
    CopyVariant,
    PersonalizationAgent,
    PersonalizationContext,
    PersonalizationRequest,
    PersonalizationResult,
)
from .trust_safety import TrustSafetyAgent, TrustSafetyContext, TrustSafetyRequest, TrustSafetyResult

__all__ = [
    # Loop selection
    "OrchestratorAgent",
    "OrchestratorRequest",
    "OrchestratorContext",
    "LoopSelection",
    # Personalization
    "PersonalizationAgent",
    "PersonalizationRequest",
    "PersonalizationContext",
    "PersonalizationResult",
    "CopyVariant",
    # Trust & safety
    "TrustSafetyAgent",
    "TrustSafetyRequest",
    "TrustSafetyContext",
    "TrustSafetyResult",
    # Experimentation
    "ExperimentationAgent",
    "ExperimentationRequest",
    "ExperimentationContext",
    "ExperimentationResult",
    "KFactorMetrics",
    "GuardrailReport",
]
