"""
Base Loop Interface.

All viral loops implement this interface so the registry, executor and
pipeline can treat them uniformly.

Each loop reads only the ``LoopContext.metadata`` keys declared by its own
details dataclass (see ``parse_details``).
"""

from __future__ import annotations

import dataclasses
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, ClassVar, Mapping, TypeVar

from loguru import logger

from ...services.smart_links import (
    LinkContext,
    SmartLink,
    SmartLinkConfig,
    SmartLinkService,
    UtmParams,
)
from ..events import EventBus, ViralEvent
from ..types import Channel, EventType, FvmType, Persona, RewardType, ViralLoop

DEFAULT_BASE_URL = "https://varsitytutors.com"

DetailsT = TypeVar("DetailsT")


class SmartLinkError(Exception):
    """Raised when a freshly generated smart link cannot be resolved."""
    pass


@dataclass
class LoopContext:
    """Who is inviting, plus loop-specific details under ``metadata``."""

    user_id: str
    persona: Persona
    subject: str | None = None
    age: int | None = None
    grade: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PersonalizedCopy:
    """Copy and channel chosen by the personalization agent."""

    headline: str
    body: str
    cta: str
    channel: Channel = Channel.IN_APP

    def render(self, detail: str = "") -> str:
        return f"{self.headline}\n\n{detail}{self.body}\n\n{self.cta}"


@dataclass
class LoopInvite:
    invite_id: str
    short_code: str
    link: str
    message: str
    channel: str
    invitee_id: str | None = None
    expires_at: str | None = None


@dataclass
class RewardGrant:
    type: RewardType
    amount: int
    description: str


@dataclass
class LoopReward:
    inviter_reward: RewardGrant
    invitee_reward: RewardGrant | None = None
    fvm_required: bool = False
    time_window_hours: float | None = None


@dataclass
class LoopResult:
    success: bool
    invite: LoopInvite | None = None
    reward: LoopReward | None = None
    error: str | None = None


def parse_details(details_cls: type[DetailsT], metadata: Mapping[str, Any]) -> DetailsT:
    """Build a details dataclass from the metadata keys it declares; other keys are ignored."""
    names = {f.name for f in dataclasses.fields(details_cls)}
    return details_cls(**{key: value for key, value in metadata.items() if key in names})


class BaseLoop(ABC):
    """
    Abstract base class for viral loops.

    Subclasses declare ``loop_id``, ``name``, ``description``,
    ``supported_personas`` and ``fvm_type`` and implement ``is_eligible``,
    ``generate_invite`` and ``fvm_reward``.
    """

    loop_id: ClassVar[ViralLoop]
    name: ClassVar[str]
    description: ClassVar[str]
    supported_personas: ClassVar[tuple[Persona, ...]]
    fvm_type: ClassVar[FvmType]

    # Hours after link creation during which an FVM still earns rewards (None = link expiry)
    fvm_window_hours: ClassVar[float | None] = None
    join_message: ClassVar[str] = "You're in!"

    def __init__(
        self,
        smart_links: SmartLinkService,
        event_bus: EventBus | None = None,
        base_url: str = DEFAULT_BASE_URL,
    ):
        self.smart_links = smart_links
        self.event_bus = event_bus
        self.base_url = base_url

    def supports(self, persona: Persona) -> bool:
        return persona in self.supported_personas

    @abstractmethod
    async def is_eligible(self, context: LoopContext) -> bool:
        """Check if loop is eligible for this context."""
        ...

    @abstractmethod
    async def generate_invite(self, context: LoopContext, copy: PersonalizedCopy) -> LoopInvite:
        """Generate invite for this loop."""
        ...

    @abstractmethod
    def fvm_reward(self) -> LoopReward:
        """Rewards granted when an invitee reaches the first-value moment."""
        ...

    async def issue_invite(
        self,
        context: LoopContext,
        link: SmartLink,
        copy: PersonalizedCopy,
        detail: str = "",
        expires_at: datetime | None = None,
        **event_fields: Any,
    ) -> LoopInvite:
        """Build the invite for a generated link and publish it as sent."""
        invite = LoopInvite(
            invite_id=str(uuid.uuid4()),
            short_code=link.short_code,
            link=link.full_url,
            message=copy.render(detail),
            channel=Channel(copy.channel).value,
            expires_at=expires_at.isoformat() if expires_at else None,
        )
        await self.log_event(EventType.INVITE_SENT, context.user_id, {
            "invite_id": invite.invite_id,
            "short_code": invite.short_code,
            "channel": invite.channel,
            **{key: value for key, value in event_fields.items() if value is not None},
        })
        return invite

    async def process_join(self, invite_code: str, invitee: LoopContext) -> LoopResult:
        """Process an invitee opening an invite link."""
        link = self.smart_links.resolve_link(invite_code)
        if link is None:
            return LoopResult(success=False, error="Invalid or expired invite code")

        await self.log_event(EventType.INVITE_OPENED, invitee.user_id, {
            "invite_code": invite_code,
            "referrer_id": link.metadata.user_id,
        })

        return LoopResult(
            success=True,
            invite=LoopInvite(
                invite_id=link.metadata.user_id,
                invitee_id=invitee.user_id,
                short_code=invite_code,
                link=link.deep_link,
                message=self.join_message,
                channel=Channel.IN_APP.value,
            ),
        )

    async def process_fvm(self, invite_code: str, invitee: LoopContext) -> LoopReward | None:
        """Process an invitee reaching FVM. Returns None outside the reward window."""
        link = self.smart_links.resolve_link(invite_code)
        if link is None:
            return None

        if self.fvm_window_hours is not None:
            elapsed = datetime.now(timezone.utc) - link.metadata.created_at
            if elapsed > timedelta(hours=self.fvm_window_hours):
                return None

        await self.log_event(EventType.FVM_REACHED, invitee.user_id, {
            "invite_code": invite_code,
            "referrer_id": link.metadata.user_id,
            "fvm_type": self.fvm_type.value,
        })
        return self.fvm_reward()

    def create_smart_link(
        self,
        context: LoopContext,
        link_context: LinkContext | None = None,
        utm_params: UtmParams | None = None,
    ) -> SmartLink:
        """Create a smart link for this loop without counting a click."""
        generated = self.smart_links.generate_link(SmartLinkConfig(
            base_url=self.base_url,
            user_id=context.user_id,
            loop_id=self.loop_id,
            persona=context.persona,
            fvm_type=self.fvm_type,
            context=link_context or LinkContext(),
            utm_params=utm_params or UtmParams(
                source="viral_growth",
                medium="referral",
                campaign=self.loop_id.value,
            ),
        ))

        link = self.smart_links.get_link(generated.short_code)
        if link is None:
            raise SmartLinkError(f"Failed to generate smart link for {self.loop_id.value}")
        return link

    async def log_event(self, event_type: EventType, user_id: str, payload: Mapping[str, Any]) -> None:
        """Publish a loop event when an event bus is attached."""
        if self.event_bus is None:
            logger.debug("No event bus attached to {}; dropping {}", self.loop_id.value, event_type.value)
            return
        await self.event_bus.publish(ViralEvent.create(event_type, {
            "user_id": user_id,
            "loop_id": self.loop_id.value,
            **payload,
        }))

    def validate_context(self, context: LoopContext) -> bool:
        return self.supports(context.persona)
