"""
xfactor: trigger-to-invite viral growth pipeline for an education platform.

Packages:
- core: event bus, agent protocol and client, loop and action frameworks
- agents: orchestrator, personalization and trust & safety decision agents
- loops: built-in viral loops
- actions: built-in agentic actions driven by session summaries
- services: smart links and session summaries
- pipeline: TriggerPipeline composition root and build_pipeline()
"""

__version__ = "0.1.0"
