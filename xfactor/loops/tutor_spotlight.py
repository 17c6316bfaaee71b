"""
Tutor Spotlight Loop.

A 5-star session rating (or a fresh prep pack) becomes a shareable tutor
card with a class sampler link. Tutors earn XP when a family books.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from ..core.loops.base import (
    BaseLoop,
    LoopContext,
    LoopInvite,
    LoopReward,
    PersonalizedCopy,
    RewardGrant,
    parse_details,
)
from ..core.types import FvmType, Persona, RewardType, ViralLoop
from ..services.smart_links import LinkContext, UtmParams

MIN_RATING = 5
FVM_WINDOW_DAYS = 30


@dataclass
class TutorSpotlightDetails:
    session_rating: int | None = None
    session_id: str | None = None
    tutor_name: str | None = None
    tutor_rating: float | None = None
    class_sampler_link: str | None = None
    prep_pack_id: str | None = None
    next_session_topic: str | None = None


class TutorSpotlightLoop(BaseLoop):
    loop_id = ViralLoop.TUTOR_SPOTLIGHT
    name = "Tutor Spotlight"
    description = "Share your expertise and get referral credits"
    supported_personas = (Persona.TUTOR,)
    fvm_type = FvmType.SESSION
    fvm_window_hours = FVM_WINDOW_DAYS * 24
    join_message = "Try a class sampler with this tutor!"

    async def is_eligible(self, context: LoopContext) -> bool:
        if not self.validate_context(context):
            return False
        details = parse_details(TutorSpotlightDetails, context.metadata)
        if details.prep_pack_id:
            return True
        return details.session_rating is not None and details.session_rating >= MIN_RATING

    async def generate_invite(self, context: LoopContext, copy: PersonalizedCopy) -> LoopInvite:
        details = parse_details(TutorSpotlightDetails, context.metadata)
        sampler_link = details.class_sampler_link or self.class_sampler_link(context)

        link = self.create_smart_link(
            context,
            LinkContext(subject=context.subject),
            UtmParams(
                source="tutor_referral",
                medium="referral",
                campaign=self.loop_id.value,
                term=context.user_id,
            ),
        )

        tutor_name = details.tutor_name or "Expert Tutor"
        rating = details.tutor_rating or details.session_rating or MIN_RATING
        detail = f"{tutor_name} ({rating:g}★) specializes in {context.subject or 'your subject'}. "
        if details.next_session_topic:
            detail += f"Next up: {details.next_session_topic}. "

        invite = await self.issue_invite(
            context,
            link,
            copy,
            detail,
            expires_at=datetime.now(timezone.utc) + timedelta(days=FVM_WINDOW_DAYS),
            session_id=details.session_id,
            session_rating=details.session_rating,
            prep_pack_id=details.prep_pack_id,
            class_sampler_link=sampler_link,
        )
        invite.message += f"\n\nClass Sampler: {sampler_link}"
        return invite

    def fvm_reward(self) -> LoopReward:
        return LoopReward(
            inviter_reward=RewardGrant(
                RewardType.XP_BOOST, 200, "200 XP for successful referral (family booked first session)"
            ),
            invitee_reward=RewardGrant(RewardType.CLASS_PASS, 1, "1 class pass to try your first session"),
        )

    def class_sampler_link(self, context: LoopContext) -> str:
        sampler_id = uuid.uuid4().hex[:8]
        query = urlencode({"subject": context.subject or "general", "ref": context.user_id})
        return f"{self.base_url.rstrip('/')}/class-sampler/{sampler_id}?{query}"
