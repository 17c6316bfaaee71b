"""
Session summaries.

``SessionSummary`` is the unit agentic actions reason about. ``SummaryService``
is a keyword-based producer used by the CLI and examples; production summaries
come from an upstream transcription/NLP service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Literal

Priority = Literal["high", "medium", "low"]

PRIORITY_ORDER: dict[str, int] = {"high": 3, "medium": 2, "low": 1}


@dataclass
class SkillGap:
    skill: str
    subject: str
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    priority: Priority = "medium"
    evidence: list[str] = field(default_factory=list)


@dataclass
class NextStep:
    action: str
    priority: Priority = "medium"
    deadline: str | None = None


@dataclass
class UpcomingExam:
    date: str
    subject: str
    topics: list[str] = field(default_factory=list)


@dataclass
class SummaryMetadata:
    subject: str | None = None
    topic: str | None = None
    session_type: str | None = None
    upcoming_exam: UpcomingExam | None = None
    stuck_concepts: list[str] = field(default_factory=list)


@dataclass
class SessionSummary:
    """Structured summary of one tutoring session."""

    session_id: str
    user_id: str
    summary: str = ""
    tutor_id: str | None = None
    key_points: list[str] = field(default_factory=list)
    skill_gaps: list[SkillGap] = field(default_factory=list)
    strengths: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    next_steps: list[NextStep] = field(default_factory=list)
    metadata: SummaryMetadata = field(default_factory=SummaryMetadata)


class SummaryService:
    """Derive a SessionSummary from transcript text using keyword heuristics."""

    def generate_summary(
        self,
        transcript: str,
        session_id: str,
        user_id: str,
        *,
        tutor_id: str | None = None,
        subject: str | None = None,
        topic: str | None = None,
    ) -> SessionSummary:
        text = transcript.lower()
        subject_name = subject or "Math"

        skill_gaps = self._extract_skill_gaps(text, subject_name)
        key_points = self._extract_key_points(text)
        strengths = self._extract_strengths(text)
        recommendations = [
            f"Focus on {gap.skill} with additional practice problems"
            for gap in skill_gaps
            if gap.priority == "high"
        ] or ["Continue practicing current topics"]

        deadline = (datetime.now(timezone.utc) + timedelta(days=7)).isoformat()
        next_steps = [
            NextStep(action=f"Practice {gap.skill}", priority="high", deadline=deadline)
            for gap in skill_gaps
            if gap.priority == "high"
        ] or [NextStep(action="Review session notes", priority="medium")]

        parts = [f"Session on {topic or 'learning'} completed."]
        if strengths:
            parts.append(f"Strengths: {', '.join(strengths)}.")
        if skill_gaps:
            parts.append(f"Areas for improvement: {', '.join(g.skill for g in skill_gaps)}.")
        if key_points:
            parts.append(f"Key points: {'; '.join(key_points)}.")

        return SessionSummary(
            session_id=session_id,
            user_id=user_id,
            tutor_id=tutor_id,
            summary=" ".join(parts),
            key_points=key_points,
            skill_gaps=skill_gaps,
            strengths=strengths,
            recommendations=recommendations,
            next_steps=next_steps,
            metadata=SummaryMetadata(
                subject=subject,
                topic=topic,
                upcoming_exam=self._extract_upcoming_exam(text, subject_name),
                stuck_concepts=self._extract_stuck_concepts(text),
            ),
        )

    @staticmethod
    def _extract_skill_gaps(text: str, subject: str) -> list[SkillGap]:
        gaps: list[SkillGap] = []
        if any(word in text for word in ("trouble", "difficulty", "struggling")):
            gaps.append(SkillGap(
                skill="factoring",
                subject=subject,
                priority="high",
                evidence=["Student mentioned having trouble with factoring"],
            ))
        if "quadratic" in text:
            gaps.append(SkillGap(
                skill="quadratic-equations",
                subject=subject,
                priority="medium",
                evidence=["Session focused on quadratic equations"],
            ))
        return gaps

    @staticmethod
    def _extract_key_points(text: str) -> list[str]:
        points = []
        if "factoring" in text:
            points.append("Practiced factoring quadratic equations")
        if "practice" in text:
            points.append("Student needs more practice with similar problems")
        if "great job" in text:
            points.append("Student showed improvement during session")
        return points or ["Session completed successfully"]

    @staticmethod
    def _extract_strengths(text: str) -> list[str]:
        strengths = []
        if "great" in text or "good" in text:
            strengths.append("Shows understanding of concepts")
        if "improvement" in text:
            strengths.append("Demonstrates learning progress")
        return strengths or ["Engaged in learning"]

    @staticmethod
    def _extract_upcoming_exam(text: str, subject: str) -> UpcomingExam | None:
        if "exam" in text or "test" in text:
            return UpcomingExam(
                date=(datetime.now(timezone.utc) + timedelta(days=14)).isoformat(),
                subject=subject,
                topics=["Quadratic Equations", "Factoring"],
            )
        return None

    @staticmethod
    def _extract_stuck_concepts(text: str) -> list[str]:
        if "stuck" in text or "confused" in text:
            return ["factoring", "quadratic-equations"]
        return []
