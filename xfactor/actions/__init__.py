"""
Built-in agentic actions, triggered from session summaries.

Students:
- BeatMySkillChallengeAction: skill gap -> challenge deck -> buddy challenge
- StudyBuddyNudgeAction: exam or stuck concept -> co-practice invite

Tutors:
- ParentProgressReelAction: wins -> privacy-safe reel -> proud parent share
- PrepPackShareAction: next steps -> prep pack -> tutor spotlight
"""

from __future__ import annotations

from ..core.actions.base import BaseAgenticAction
from .beat_my_skill_challenge import BeatMySkillChallengeAction
from .parent_progress_reel import ParentProgressReelAction, ProgressReel
from .prep_pack_share import PrepMaterial, PrepPack, PrepPackShareAction
from .study_buddy_nudge import StudyBuddyNudgeAction


def create_default_actions() -> list[BaseAgenticAction]:
    """One instance of every built-in action, in evaluation order."""
    return [
        BeatMySkillChallengeAction(),
        StudyBuddyNudgeAction(),
        ParentProgressReelAction(),
        PrepPackShareAction(),
    ]


__all__ = [
    "BeatMySkillChallengeAction",
    "StudyBuddyNudgeAction",
    "ParentProgressReelAction",
    "ProgressReel",
    "PrepPackShareAction",
    "PrepPack",
    "PrepMaterial",
    "create_default_actions",
]
