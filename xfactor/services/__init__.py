"""Collaborator services: smart link generation and session summaries."""

from .smart_links import LinkContext, SmartLink, SmartLinkConfig, SmartLinkService, UtmParams
from .summary import SessionSummary, SkillGap, SummaryService

__all__ = [
    "SmartLinkService",
    "SmartLinkConfig",
    "SmartLink",
    "LinkContext",
    "UtmParams",
    "SessionSummary",
    "SkillGap",
    "SummaryService",
]
