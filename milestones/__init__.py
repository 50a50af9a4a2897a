"""
Milestone inference and progress cards.

transcript snapshot → detect_milestones() → build_cards() / summarize()
"""
from .cards import build_cards, summarize
from .detection import detect_milestones, keyword_confidence, severity_for
from .patterns import MilestoneCategory

__all__ = [
    "MilestoneCategory",
    "build_cards",
    "detect_milestones",
    "keyword_confidence",
    "severity_for",
    "summarize",
]
