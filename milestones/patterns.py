"""
Milestone categories and their static configuration.

Each category maps to one frozen pattern record (trigger phrases +
canonical description) and one frozen style record (title, card color, icon).
Unknown categories resolve to FALLBACK_STYLE.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple, Union


class MilestoneCategory(str, Enum):
    """The ten progress signals, in scan order."""

    EMOTIONAL_BREAKTHROUGH = "emotional_breakthrough"
    SELF_AWARENESS = "self_awareness"
    COPING_STRATEGY = "coping_strategy"
    GOAL_SETTING = "goal_setting"
    ANXIETY_MANAGEMENT = "anxiety_management"
    COMMUNICATION_IMPROVEMENT = "communication_improvement"
    CONFIDENCE_BUILDING = "confidence_building"
    RELATIONSHIP_INSIGHT = "relationship_insight"
    STRESS_RELIEF = "stress_relief"
    MINDFULNESS_PRACTICE = "mindfulness_practice"


@dataclass(frozen=True)
class MilestonePattern:
    keywords: Tuple[str, ...]
    description: str


@dataclass(frozen=True)
class CategoryStyle:
    title: str
    color: str
    icon: str


C = MilestoneCategory

MILESTONE_PATTERNS: Mapping[MilestoneCategory, MilestonePattern] = MappingProxyType({
    C.EMOTIONAL_BREAKTHROUGH: MilestonePattern(
        keywords=("I feel", "I realize", "breakthrough", "clarity", "understand now", "lightbulb moment", "epiphany"),
        description="A moment of emotional insight or breakthrough",
    ),
    C.SELF_AWARENESS: MilestonePattern(
        keywords=("I notice", "I tend to", "my pattern", "I usually", "I always", "about myself", "self-reflection"),
        description="Gained deeper self-awareness",
    ),
    C.COPING_STRATEGY: MilestonePattern(
        keywords=("I could try", "maybe I can", "strategy", "technique", "cope with", "manage", "handle this"),
        description="Identified or learned a new coping strategy",
    ),
    C.GOAL_SETTING: MilestonePattern(
        keywords=("I want to", "my goal", "I will", "I plan to", "I hope to", "objective", "target"),
        description="Set a meaningful goal for personal growth",
    ),
    C.ANXIETY_MANAGEMENT: MilestonePattern(
        keywords=("less anxious", "calm down", "breathe", "relaxed", "anxiety", "worry less", "peaceful"),
        description="Made progress managing anxiety",
    ),
    C.COMMUNICATION_IMPROVEMENT: MilestonePattern(
        keywords=("express myself", "communicate better", "tell them", "speak up", "voice my", "conversation"),
        description="Improved communication skills",
    ),
    C.CONFIDENCE_BUILDING: MilestonePattern(
        keywords=("I can do", "I am capable", "confident", "believe in myself", "I deserve", "proud of myself"),
        description="Built confidence and self-esteem",
    ),
    C.RELATIONSHIP_INSIGHT: MilestonePattern(
        keywords=("relationship", "my partner", "friendship", "family", "connect with", "boundary", "support"),
        description="Gained insight into relationships",
    ),
    C.STRESS_RELIEF: MilestonePattern(
        keywords=("less stress", "pressure off", "relieved", "burden", "overwhelming", "manageable"),
        description="Found ways to reduce stress",
    ),
    C.MINDFULNESS_PRACTICE: MilestonePattern(
        keywords=("present moment", "mindful", "aware", "meditation", "focus on now", "centered", "grounded"),
        description="Practiced mindfulness and being present",
    ),
})

CATEGORY_STYLES: Mapping[MilestoneCategory, CategoryStyle] = MappingProxyType({
    C.EMOTIONAL_BREAKTHROUGH: CategoryStyle("🌟 Emotional Breakthrough", "#FF6B6B", "🌟"),
    C.SELF_AWARENESS: CategoryStyle("🪞 Self-Awareness Moment", "#4ECDC4", "🪞"),
    C.COPING_STRATEGY: CategoryStyle("🛠️ New Coping Strategy", "#45B7D1", "🛠️"),
    C.GOAL_SETTING: CategoryStyle("🎯 Goal Setting", "#FFA07A", "🎯"),
    C.ANXIETY_MANAGEMENT: CategoryStyle("😌 Anxiety Relief", "#98D8C8", "😌"),
    C.COMMUNICATION_IMPROVEMENT: CategoryStyle("💬 Communication Growth", "#F7DC6F", "💬"),
    C.CONFIDENCE_BUILDING: CategoryStyle("💪 Confidence Boost", "#BB8FCE", "💪"),
    C.RELATIONSHIP_INSIGHT: CategoryStyle("🤝 Relationship Insight", "#F8B88B", "🤝"),
    C.STRESS_RELIEF: CategoryStyle("🧘 Stress Relief", "#85C1E9", "🧘"),
    C.MINDFULNESS_PRACTICE: CategoryStyle("🧠 Mindfulness Practice", "#82E0AA", "🧠"),
})

FALLBACK_STYLE = CategoryStyle("✨ Milestone", "#0A84FF", "✨")


def parse_category(value: Union[str, MilestoneCategory]) -> Optional[MilestoneCategory]:
    """Return the category for a tag, or None for tags this build does not know."""
    try:
        return MilestoneCategory(value)
    except ValueError:
        return None


def style_for(category: Union[str, MilestoneCategory]) -> CategoryStyle:
    parsed = parse_category(category)
    if parsed is None:
        return FALLBACK_STYLE
    return CATEGORY_STYLES[parsed]
