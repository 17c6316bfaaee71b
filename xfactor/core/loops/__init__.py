"""
Viral loop framework.

Modules:
- base: LoopContext, LoopInvite, LoopReward and the BaseLoop interface
- registry: LoopRegistry keyed by loop id
- executor: LoopExecutor running a loop through personalization to invite

Concrete loops live in ``xfactor.loops``.
"""
