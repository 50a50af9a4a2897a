"""
Milestone inference over a finished transcript.

Keyword heuristic, deliberately not an NLP classifier: deterministic, no
external model, easy to assert on. Only the user's speech is mined.

Thresholds:
- a category triggers when confidence > 0.2
- severity: > 0.7 high, > 0.4 medium, else low
- one milestone per category per 60 s of achieved_at
"""
from __future__ import annotations

from datetime import timedelta
from typing import Iterable, List, Mapping

from voice_session.models import Milestone, SeverityTier, TranscriptEntry
from .patterns import MILESTONE_PATTERNS, MilestoneCategory, MilestonePattern, style_for


TRIGGER_THRESHOLD = 0.2
HIGH_THRESHOLD = 0.7
MEDIUM_THRESHOLD = 0.4
DEDUP_WINDOW = timedelta(seconds=60)


def keyword_confidence(content: str, pattern: MilestonePattern) -> float:
    """Share of the pattern's phrases that occur in content (case-insensitive substrings)."""
    if not pattern.keywords:
        return 0.0
    lowered = content.lower()
    matched = sum(1 for keyword in pattern.keywords if keyword.lower() in lowered)
    return min(matched / len(pattern.keywords), 1.0)


def severity_for(confidence: float) -> SeverityTier:
    # Upper bounds are exclusive: exactly 0.7 is medium, exactly 0.4 is low.
    if confidence > HIGH_THRESHOLD:
        return "high"
    if confidence > MEDIUM_THRESHOLD:
        return "medium"
    return "low"


def _suppressed(candidate: Milestone, accepted: Iterable[Milestone]) -> bool:
    return any(
        m.category == candidate.category
        and abs(m.achieved_at - candidate.achieved_at) < DEDUP_WINDOW
        for m in accepted
    )


def detect_milestones(
    transcript: Iterable[TranscriptEntry],
    patterns: Mapping[MilestoneCategory, MilestonePattern] = MILESTONE_PATTERNS,
) -> List[Milestone]:
    """
    Detect milestones in a transcript snapshot.

    Returns accepted milestones, most recent achieved_at first. Pure: the
    same transcript always yields the same list.
    """
    accepted: List[Milestone] = []

    for entry in transcript:
        if entry.speaker != "user":
            continue

        for category, pattern in patterns.items():
            confidence = keyword_confidence(entry.content, pattern)
            if confidence <= TRIGGER_THRESHOLD:
                continue

            candidate = Milestone(
                milestone_id=f"{entry.entry_id}-{category.value}",
                category=category.value,
                title=style_for(category).title,
                description=pattern.description,
                achieved_at=entry.timestamp,
                severity=severity_for(confidence),
                confidence=confidence,
            )
            if not _suppressed(candidate, accepted):
                accepted.append(candidate)

    return sorted(accepted, key=lambda m: m.achieved_at, reverse=True)
