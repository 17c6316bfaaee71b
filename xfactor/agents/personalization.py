"""
Personalization Agent.

Tailors invite copy, reward and channel by persona, loop and user context.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..core.agent_base import AgentConfig, AgentRequest, AgentResponse, BaseAgent, ErrorDetail
from ..core.loops.base import RewardGrant, parse_details
from ..core.types import Channel, Persona, RewardType, ViralLoop


@dataclass
class PersonalizationContext:
    """Context keys read by the personalization agent."""

    subject: str | None = None
    age: int | None = None
    grade: str | None = None
    past_invites: int = 0
    preferred_channels: list[str] = field(default_factory=list)


@dataclass
class PersonalizationRequest(AgentRequest):
    persona: Persona | None = None
    loop_id: ViralLoop | None = None


@dataclass
class CopyVariant:
    headline: str
    body: str
    cta: str
    tone: str


@dataclass
class PersonalizationResult:
    copy: CopyVariant
    reward: RewardGrant
    channel: Channel
    variant: str


# loop -> tone -> (headline, body, cta)
LOOP_COPY: dict[ViralLoop, dict[str, tuple[str, str, str]]] = {
    ViralLoop.BUDDY_CHALLENGE: {
        "encouraging": (
            "Think a friend can beat your {subject} score?",
            "Send them a 5-question challenge and see who comes out on top.",
            "Send the challenge",
        ),
        "competitive": (
            "Beat my {subject} score!",
            "Think you can do better? Take my challenge now.",
            "Accept the challenge",
        ),
        "supportive": (
            "Practice {subject} with a friend",
            "Learning is more fun together. Invite a friend to try this challenge.",
            "Invite a friend",
        ),
    },
    ViralLoop.RESULTS_RALLY: {
        "encouraging": (
            "Your {subject} results are in!",
            "See how your friends stack up on the same questions.",
            "Start a rally",
        ),
        "competitive": (
            "Can anyone top my {subject} results?",
            "Take the same test and climb the leaderboard.",
            "Join the rally",
        ),
        "supportive": (
            "Look how far you've come in {subject}",
            "Invite a friend to practice alongside you.",
            "Share your results",
        ),
    },
    ViralLoop.PROUD_PARENT: {
        "encouraging": (
            "Proud of your child's progress in {subject}?",
            "Share the highlights with another family and you both get a free class pass.",
            "Share with a parent",
        ),
    },
    ViralLoop.STREAK_RESCUE: {
        "encouraging": (
            "Save your streak with a friend",
            "Practice {subject} together and you both earn a streak shield.",
            "Phone a friend",
        ),
        "supportive": (
            "Your streak needs a hand",
            "Ask a friend to practice {subject} with you today.",
            "Ask for help",
        ),
    },
    ViralLoop.TUTOR_SPOTLIGHT: {
        "encouraging": (
            "Your students love your {subject} sessions",
            "Share your tutor card and class sampler with families who could use your help.",
            "Share my spotlight",
        ),
    },
}

GENERIC_COPY: dict[str, tuple[str, str, str]] = {
    "encouraging": (
        "Share your {subject} progress!",
        "You've been doing great! Invite a friend to join you.",
        "Invite a friend",
    ),
}

STUDENT_REWARDS: dict[ViralLoop, tuple[RewardType, int]] = {
    ViralLoop.BUDDY_CHALLENGE: (RewardType.STREAK_SHIELD, 1),
    ViralLoop.RESULTS_RALLY: (RewardType.GEM_BOOST, 50),
    ViralLoop.STREAK_RESCUE: (RewardType.STREAK_SHIELD, 1),
    ViralLoop.ACHIEVEMENT_SPOTLIGHT: (RewardType.XP_BOOST, 100),
    ViralLoop.CLASS_WATCH_PARTY: (RewardType.AI_TUTOR_MINUTES, 15),
    ViralLoop.SUBJECT_CLUBS: (RewardType.PRACTICE_POWER_UP, 1),
    ViralLoop.PROUD_PARENT: (RewardType.CLASS_PASS, 1),
    ViralLoop.TUTOR_SPOTLIGHT: (RewardType.XP_BOOST, 50),
}

TUTOR_REWARDS: dict[ViralLoop, tuple[RewardType, int]] = {
    ViralLoop.TUTOR_SPOTLIGHT: (RewardType.XP_BOOST, 200),
    ViralLoop.PROUD_PARENT: (RewardType.XP_BOOST, 100),
    ViralLoop.CLASS_WATCH_PARTY: (RewardType.XP_BOOST, 100),
    ViralLoop.ACHIEVEMENT_SPOTLIGHT: (RewardType.XP_BOOST, 100),
}

DEFAULT_CHANNELS = {
    Persona.STUDENT: Channel.IN_APP,
    Persona.PARENT: Channel.EMAIL,
    Persona.TUTOR: Channel.EMAIL,
}

REWARD_DESCRIPTIONS = {
    RewardType.AI_TUTOR_MINUTES: "{n} minutes of AI Tutor",
    RewardType.CLASS_PASS: "{n} class pass{es}",
    RewardType.GEM_BOOST: "{n} gems",
    RewardType.XP_BOOST: "{n} XP",
    RewardType.STREAK_SHIELD: "{n} streak shield{s}",
    RewardType.PRACTICE_POWER_UP: "{n} practice power-up{s}",
}


def describe_reward(reward_type: RewardType, amount: int) -> str:
    template = REWARD_DESCRIPTIONS.get(reward_type, "{n} reward")
    plural = amount != 1
    return template.format(n=amount, s="s" if plural else "", es="es" if plural else "")


class PersonalizationAgent(BaseAgent):
    """Choose copy, reward and channel for one loop invocation."""

    def __init__(self, max_latency_ms: float = 150):
        super().__init__(AgentConfig(
            name="personalization",
            version="1.0.0",
            max_latency_ms=max_latency_ms,
            enable_caching=True,
        ))

    async def handle(self, request: AgentRequest) -> AgentResponse:
        persona = getattr(request, "persona", None)
        loop_id = getattr(request, "loop_id", None)
        if persona is None or loop_id is None:
            return self.create_error_response(
                request.request_id,
                ErrorDetail("INVALID_REQUEST", "persona and loop_id are required"),
                "Cannot personalize without a persona and loop",
            )

        persona = Persona(persona)
        loop_id = ViralLoop(loop_id)
        context = parse_details(PersonalizationContext, request.context)

        copy = self.generate_copy(loop_id, context)
        reward = self.select_reward(persona, loop_id, context)
        channel = self.select_channel(persona, context)
        variant = self.select_variant(request.user_id, loop_id)

        rationale = (
            f"Personalized for {persona.value} with {loop_id.value} loop. "
            f"Selected {copy.tone} tone copy, {reward.type.value} reward ({reward.amount}), "
            f"and {channel.value} channel. Based on subject: {context.subject or 'none'}, "
            f"age: {context.age if context.age is not None else 'unknown'}, "
            f"past invites: {context.past_invites}."
        )

        return self.create_response(
            request.request_id,
            True,
            rationale,
            data=PersonalizationResult(copy=copy, reward=reward, channel=channel, variant=variant),
            confidence=0.8,
            features_used=["persona", "loop_id", "subject", "age", "past_invites", "preferred_channels"],
        )

    @staticmethod
    def select_tone(age: int | None) -> str:
        if age is None:
            return "encouraging"
        if age < 13:
            return "supportive"
        if age >= 18:
            return "competitive"
        return "encouraging"

    def generate_copy(self, loop_id: ViralLoop, context: PersonalizationContext) -> CopyVariant:
        tone = self.select_tone(context.age)
        templates = LOOP_COPY.get(loop_id, GENERIC_COPY)
        if tone not in templates:
            tone = "encouraging"
        headline, body, cta = templates[tone]
        values = {"subject": context.subject or "your subject"}
        return CopyVariant(
            headline=headline.format(**values),
            body=body.format(**values),
            cta=cta.format(**values),
            tone=tone,
        )

    def select_reward(
        self,
        persona: Persona,
        loop_id: ViralLoop,
        context: PersonalizationContext,
    ) -> RewardGrant:
        if persona == Persona.PARENT:
            reward_type, base_amount = RewardType.CLASS_PASS, 1
        elif persona == Persona.TUTOR:
            reward_type, base_amount = TUTOR_REWARDS.get(loop_id, (RewardType.XP_BOOST, 50))
        else:
            reward_type, base_amount = STUDENT_REWARDS.get(loop_id, (RewardType.GEM_BOOST, 25))

        # Loyalty bonus: +10% per past invite, capped at 2x
        multiplier = min(1 + max(context.past_invites, 0) * 0.1, 2.0)
        amount = int(base_amount * multiplier)
        return RewardGrant(type=reward_type, amount=amount, description=describe_reward(reward_type, amount))

    @staticmethod
    def select_channel(persona: Persona, context: PersonalizationContext) -> Channel:
        for preferred in context.preferred_channels:
            try:
                return Channel(preferred)
            except ValueError:
                continue
        return DEFAULT_CHANNELS.get(persona, Channel.IN_APP)

    @staticmethod
    def select_variant(user_id: str, loop_id: ViralLoop) -> str:
        digest = hashlib.sha256(f"{user_id}{loop_id.value}".encode("utf-8")).digest()
        return "A" if digest[0] % 2 == 0 else "B"


def personalization_context(values: Mapping[str, Any]) -> dict[str, Any]:
    """Keep only the keys the personalization agent reads, dropping unset ones."""
    keys = PersonalizationContext.__dataclass_fields__
    return {key: value for key, value in values.items() if key in keys and value is not None}
