"""
Progress cards and the end-of-session summary line.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable, List, Sequence

from voice_session.models import Milestone, ProgressCard
from .patterns import style_for


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_cards(
    session_id: str,
    milestones: Iterable[Milestone],
    clock: Callable[[], datetime] = _utc_now,
) -> List[ProgressCard]:
    """One card per milestone, same order, each stamped with its generation time."""
    cards = []
    for milestone in milestones:
        style = style_for(milestone.category)
        cards.append(
            ProgressCard(
                card_id=f"card-{milestone.milestone_id}",
                session_id=session_id,
                title=milestone.title,
                description=milestone.description,
                milestone=milestone,
                created_at=clock(),
                color=style.color,
                icon=style.icon,
            )
        )
    return cards


def summarize(milestones: Sequence[Milestone]) -> str:
    """Free-text progress summary; branches on the number of distinct categories."""
    if not milestones:
        return "You showed up for yourself today - that's a meaningful step forward."

    # dict keeps first-seen order
    categories = list(dict.fromkeys(m.category for m in milestones))

    if len(categories) == 1:
        return f"Great progress with {style_for(categories[0]).title.lower()}. Keep building on this insight."

    if len(categories) <= 3:
        areas = ", ".join(style_for(c).title.lower() for c in categories)
        return f"Wonderful session! You made progress in: {areas}."

    return (
        f"Incredible session! You achieved {len(milestones)} milestones "
        "across multiple areas of personal growth."
    )
