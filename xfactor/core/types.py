"""
Shared enumerations for the viral growth system.

Every identifier here is a stable string used as a map key in registries,
event payloads and smart link metadata.
"""

from enum import Enum


class Persona(str, Enum):
    """Role of the acting user."""

    STUDENT = "student"
    PARENT = "parent"
    TUTOR = "tutor"


class UserTrigger(str, Enum):
    """Raw domain events that may start a viral loop."""

    SESSION_COMPLETE = "session_complete"
    BADGE_EARNED = "badge_earned"
    STREAK_PRESERVED = "streak_preserved"
    RESULTS_PAGE_VIEW = "results_page_view"
    STREAK_AT_RISK = "streak_at_risk"
    CLASS_RECORDED = "class_recorded"
    CLUB_JOINED = "club_joined"
    MILESTONE_REACHED = "milestone_reached"
    SESSION_RATED = "session_rated"


class ViralLoop(str, Enum):
    """Loop identifiers. Only some have registered implementations."""

    BUDDY_CHALLENGE = "buddy_challenge"
    RESULTS_RALLY = "results_rally"
    PROUD_PARENT = "proud_parent"
    TUTOR_SPOTLIGHT = "tutor_spotlight"
    CLASS_WATCH_PARTY = "class_watch_party"
    STREAK_RESCUE = "streak_rescue"
    SUBJECT_CLUBS = "subject_clubs"
    ACHIEVEMENT_SPOTLIGHT = "achievement_spotlight"


class EventType(str, Enum):
    """Event types published on the event bus."""

    # Pipeline lifecycle
    TRIGGER_RECEIVED = "trigger_received"
    ACTION_EVALUATED = "action_evaluated"
    LOOP_EXECUTED = "loop_executed"
    PIPELINE_ERROR = "pipeline_error"

    # Invite events
    INVITE_SENT = "invites_sent"
    INVITE_FAILED = "invite_failed"
    INVITE_OPENED = "invite_opened"
    INVITE_CLICKED = "invite_clicked"

    # Value events
    FVM_REACHED = "FVM_reached"

    # Loop events
    LOOP_TRIGGERED = "loop_triggered"
    LOOP_COMPLETED = "loop_completed"

    # Guardrail events
    FRAUD_DETECTED = "fraud_detected"
    ABUSE_REPORT = "abuse_report"


# Subscription channel that receives every event
ALL_EVENTS = "*"


class RewardType(str, Enum):
    AI_TUTOR_MINUTES = "ai_tutor_minutes"
    CLASS_PASS = "class_pass"
    GEM_BOOST = "gem_boost"
    XP_BOOST = "xp_boost"
    STREAK_SHIELD = "streak_shield"
    PRACTICE_POWER_UP = "practice_power_up"


class Channel(str, Enum):
    IN_APP = "in_app"
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"


class FvmType(str, Enum):
    """First-value moment an invite deep-links into."""

    PRACTICE = "practice"
    AI_TUTOR = "ai_tutor"
    SESSION = "session"
    CHALLENGE = "challenge"
