"""
Agentic action framework.

Modules:
- base: AgenticActionContext, AgenticActionResult and BaseAgenticAction
- orchestrator: ActionOrchestrator deciding which actions fire for a summary

Concrete actions live in ``xfactor.actions``.
"""
