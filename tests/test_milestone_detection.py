"""
Milestone inference tests.

Verifies:
- Only user speech is mined
- Confidence thresholds and severity tiers
- 60 s per-category deduplication
- Ordering and idempotence
"""
from datetime import datetime, timedelta, timezone
from types import MappingProxyType

import pytest

from milestones import MilestoneCategory, detect_milestones, keyword_confidence, severity_for
from milestones.patterns import MILESTONE_PATTERNS, MilestonePattern
from voice_session.models import TranscriptEntry


T0 = datetime(2025, 3, 1, 10, 0, 0, tzinfo=timezone.utc)


def entry(entry_id, content, speaker="user", offset_s=0):
    return TranscriptEntry(
        entry_id=entry_id,
        timestamp=T0 + timedelta(seconds=offset_s),
        speaker=speaker,
        content=content,
    )


class TestConfidence:
    def test_share_of_matched_keywords(self):
        pattern = MILESTONE_PATTERNS[MilestoneCategory.EMOTIONAL_BREAKTHROUGH]
        assert keyword_confidence("I feel a real breakthrough today", pattern) == pytest.approx(2 / 7)

    def test_case_insensitive(self):
        pattern = MILESTONE_PATTERNS[MilestoneCategory.EMOTIONAL_BREAKTHROUGH]
        assert keyword_confidence("I FEEL SUCH CLARITY", pattern) == pytest.approx(2 / 7)

    def test_empty_keywords(self):
        assert keyword_confidence("anything", MilestonePattern(keywords=(), description="x")) == 0.0


class TestSeverity:
    def test_boundaries_are_exclusive(self):
        assert severity_for(0.7) == "medium"
        assert severity_for(0.4) == "low"

    def test_tiers(self):
        assert severity_for(0.71) == "high"
        assert severity_for(0.5) == "medium"
        assert severity_for(0.25) == "low"


class TestDetectMilestones:
    def test_empty_transcript(self):
        assert detect_milestones([]) == []

    def test_ai_only_transcript(self):
        transcript = [entry("a1", "I feel a real breakthrough and clarity", speaker="ai")]
        assert detect_milestones(transcript) == []

    def test_single_breakthrough(self):
        milestones = detect_milestones([entry("e1", "I feel a real breakthrough today")])

        assert len(milestones) == 1
        m = milestones[0]
        assert m.category == "emotional_breakthrough"
        assert m.severity == "low"
        assert m.confidence == pytest.approx(2 / 7)
        assert m.milestone_id == "e1-emotional_breakthrough"
        assert m.achieved_at == T0
        assert m.title == "🌟 Emotional Breakthrough"
        assert m.description == "A moment of emotional insight or breakthrough"

    def test_single_keyword_does_not_trigger(self):
        # 1/7 is below the trigger threshold
        assert detect_milestones([entry("e1", "That was a breakthrough")]) == []

    def test_dedup_within_window_keeps_earlier(self):
        transcript = [
            entry("e1", "I notice I tend to avoid conflict", offset_s=0),
            entry("e2", "I notice I tend to apologize a lot", offset_s=10),
        ]
        milestones = detect_milestones(transcript)

        assert [m.milestone_id for m in milestones] == ["e1-self_awareness"]

    def test_dedup_window_is_strict(self):
        transcript = [
            entry("e1", "I notice I tend to avoid conflict", offset_s=0),
            entry("e2", "I notice I tend to apologize a lot", offset_s=60),
        ]
        milestones = detect_milestones(transcript)

        assert {m.milestone_id for m in milestones} == {"e1-self_awareness", "e2-self_awareness"}

    def test_different_categories_not_deduplicated(self):
        transcript = [
            entry("e1", "I notice I tend to avoid conflict", offset_s=0),
            entry("e2", "My goal is that I want to sleep more", offset_s=5),
        ]
        categories = {m.category for m in detect_milestones(transcript)}
        assert categories == {"self_awareness", "goal_setting"}

    def test_most_recent_first(self):
        transcript = [
            entry("e1", "I feel a breakthrough", offset_s=0),
            entry("e2", "My goal is that I want to rest", offset_s=120),
            entry("e3", "I notice I tend to rush", offset_s=240),
        ]
        milestones = detect_milestones(transcript)
        stamps = [m.achieved_at for m in milestones]

        assert stamps == sorted(stamps, reverse=True)
        assert milestones[0].milestone_id == "e3-self_awareness"

    def test_idempotent(self):
        transcript = [
            entry("e1", "I feel a breakthrough", offset_s=0),
            entry("e2", "I notice I tend to rush", offset_s=30),
        ]
        assert detect_milestones(transcript) == detect_milestones(transcript)

    def test_severity_from_custom_pattern(self):
        keywords = tuple(f"kw{i}" for i in range(10))
        patterns = MappingProxyType({
            MilestoneCategory.GOAL_SETTING: MilestonePattern(keywords=keywords, description="custom"),
        })

        def text(n):
            return " ".join(keywords[:n])

        assert detect_milestones([entry("e1", text(2))], patterns) == []
        assert detect_milestones([entry("e1", text(3))], patterns)[0].severity == "low"
        assert detect_milestones([entry("e1", text(4))], patterns)[0].severity == "low"
        assert detect_milestones([entry("e1", text(5))], patterns)[0].severity == "medium"
        assert detect_milestones([entry("e1", text(7))], patterns)[0].severity == "medium"
        assert detect_milestones([entry("e1", text(8))], patterns)[0].severity == "high"
