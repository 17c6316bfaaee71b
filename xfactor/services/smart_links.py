"""
Smart Link Service.

Generates signed short codes with UTM tracking and attribution.
Deep links land invitees directly in a first-value moment (FVM).

Links are kept in memory; persistence is out of scope.
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

from loguru import logger

from ..core.types import FvmType, Persona, ViralLoop


@dataclass
class LinkContext:
    """Optional deep-link parameters."""

    subject: str | None = None
    skill: str | None = None
    difficulty: str | None = None
    challenge_id: str | None = None


@dataclass
class UtmParams:
    source: str | None = None
    medium: str | None = None
    campaign: str | None = None
    term: str | None = None
    content: str | None = None


@dataclass
class SmartLinkConfig:
    base_url: str
    user_id: str
    loop_id: ViralLoop
    persona: Persona
    fvm_type: FvmType
    referrer_id: str | None = None
    context: LinkContext = field(default_factory=LinkContext)
    utm_params: UtmParams = field(default_factory=UtmParams)


@dataclass
class SmartLinkMetadata:
    user_id: str
    loop_id: ViralLoop
    persona: Persona
    fvm_type: FvmType
    created_at: datetime
    referrer_id: str | None = None
    click_count: int = 0


@dataclass
class SmartLink:
    short_code: str
    full_url: str
    deep_link: str
    metadata: SmartLinkMetadata
    expires_at: datetime | None = None

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at < datetime.now(timezone.utc)


FVM_PATHS = {
    FvmType.PRACTICE: "/practice/start",
    FvmType.AI_TUTOR: "/ai-tutor/start",
    FvmType.SESSION: "/session/book",
}


class SmartLinkService:
    """
    Generate and resolve attributed short links.

    Example:
        service = SmartLinkService(secret="s3cret")
        link = service.generate_link(SmartLinkConfig(
            base_url="https://varsitytutors.com",
            user_id="student-1",
            loop_id=ViralLoop.BUDDY_CHALLENGE,
            persona=Persona.STUDENT,
            fvm_type=FvmType.CHALLENGE,
        ))
        service.resolve_link(link.short_code)
    """

    def __init__(
        self,
        secret: str = "default-secret",
        short_code_length: int = 8,
        expiry_days: int = 30,
    ):
        self.secret = secret
        self.short_code_length = short_code_length
        self.expiry_days = expiry_days
        self._links: dict[str, SmartLink] = {}

    def generate_link(self, config: SmartLinkConfig) -> SmartLink:
        """Generate a smart link with attribution and store it by short code."""
        link_id = str(uuid.uuid4())
        short_code = self._generate_short_code(link_id)
        while short_code in self._links:
            link_id = str(uuid.uuid4())
            short_code = self._generate_short_code(link_id)

        signature = self._sign_link(link_id, config.user_id, config.loop_id)
        deep_link = self._build_deep_link(config, link_id, signature)
        now = datetime.now(timezone.utc)

        link = SmartLink(
            short_code=short_code,
            full_url=self._build_full_url(config, deep_link),
            deep_link=deep_link,
            expires_at=now + timedelta(days=self.expiry_days),
            metadata=SmartLinkMetadata(
                user_id=config.user_id,
                referrer_id=config.referrer_id,
                loop_id=config.loop_id,
                persona=config.persona,
                fvm_type=config.fvm_type,
                created_at=now,
            ),
        )
        self._links[short_code] = link
        return link

    def resolve_link(self, short_code: str) -> SmartLink | None:
        """
        Resolve a short code to its link.

        Expired links are removed and resolve to None. Each successful
        resolution counts as a click.
        """
        link = self._links.get(short_code)
        if link is None:
            return None

        if link.is_expired:
            del self._links[short_code]
            return None

        link.metadata.click_count += 1
        return link

    def get_link(self, short_code: str) -> SmartLink | None:
        """Look up a live link without counting a click."""
        link = self._links.get(short_code)
        if link is None or link.is_expired:
            return None
        return link

    def track_click(self, short_code: str, **click_metadata: Any) -> bool:
        link = self.resolve_link(short_code)
        if link is None:
            return False

        logger.debug(
            "Smart link click tracked: {} (user={}, loop={}) {}",
            short_code,
            link.metadata.user_id,
            link.metadata.loop_id.value,
            click_metadata,
        )
        return True

    def get_link_stats(self, short_code: str) -> dict[str, Any] | None:
        link = self._links.get(short_code)
        if link is None:
            return None
        return {
            "clicks": link.metadata.click_count,
            "created_at": link.metadata.created_at.isoformat(),
            "expires_at": link.expires_at.isoformat() if link.expires_at else None,
        }

    def get_user_links(self, user_id: str) -> list[SmartLink]:
        return [link for link in self._links.values() if link.metadata.user_id == user_id]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _generate_short_code(self, link_id: str) -> str:
        digest = hashlib.sha256(link_id.encode("utf-8")).hexdigest()
        return digest[: self.short_code_length].upper()

    def _sign_link(self, link_id: str, user_id: str, loop_id: ViralLoop) -> str:
        payload = f"{link_id}:{user_id}:{loop_id.value}{self.secret}"
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]

    def _build_deep_link(self, config: SmartLinkConfig, link_id: str, signature: str) -> str:
        params = {
            "linkId": link_id,
            "sig": signature,
            "loop": config.loop_id.value,
            "persona": config.persona.value,
            "fvm": config.fvm_type.value,
        }
        ctx = config.context
        if ctx.subject:
            params["subject"] = ctx.subject
        if ctx.skill:
            params["skill"] = ctx.skill
        if ctx.difficulty:
            params["difficulty"] = ctx.difficulty
        if ctx.challenge_id:
            params["challenge"] = ctx.challenge_id

        return f"{config.base_url.rstrip('/')}{self._fvm_path(config)}?{urlencode(params)}"

    def _build_full_url(self, config: SmartLinkConfig, deep_link: str) -> str:
        utm = config.utm_params
        params: dict[str, str] = {
            "utm_source": utm.source or "viral_growth",
            "utm_medium": utm.medium or "referral",
            "utm_campaign": utm.campaign or config.loop_id.value,
        }
        if utm.term:
            params["utm_term"] = utm.term
        if utm.content:
            params["utm_content"] = utm.content

        params["ref"] = config.user_id
        if config.referrer_id:
            params["referrer"] = config.referrer_id

        return f"{deep_link}&{urlencode(params)}"

    @staticmethod
    def _fvm_path(config: SmartLinkConfig) -> str:
        if config.fvm_type == FvmType.CHALLENGE:
            if config.context.challenge_id:
                return f"/challenge/{config.context.challenge_id}"
            return "/challenge/start"
        return FVM_PATHS.get(config.fvm_type, "/")
