"""
System instruction assembly for the AI counterpart.

Composes one instruction string from:
- a personality preset (presets/<name>.yaml)
- optional user assessment context (mood, stress, goals, ...)
- optional free-text custom instructions

The orchestrator treats the result as an opaque string; callers resolve the
preset and assessment explicitly instead of reading ambient settings.

Implementation note:
- Presets are stored as YAML and parsed with PyYAML's safe_load, which
  also accepts pure JSON files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from logging_setup import get_logger, Component


logger = get_logger(Component.VOICE_SESSION)

DEFAULT_PRESET = "compassionate"

# Used when no preset file can be found at all.
FALLBACK_PROMPT = (
    "You are a warm, compassionate AI therapist who speaks with gentle kindness and deep empathy. "
    "Create a safe, judgment-free space and use comforting language."
)

GUIDELINES = """Always:
- Keep responses conversational and natural (1-3 sentences typically)
- Listen actively and ask thoughtful follow-up questions
- Respond with empathy and understanding
- Help users explore their thoughts and emotions
- Provide practical coping strategies when appropriate
- Maintain appropriate therapeutic boundaries"""


@dataclass(frozen=True)
class UserAssessment:
    """Onboarding answers used to personalize the conversation."""

    current_mood: int
    stress_level: int
    primary_goals: List[str] = field(default_factory=list)
    previous_therapy: Optional[str] = None
    communication_style: Optional[str] = None
    specific_concerns: List[str] = field(default_factory=list)

    def __post_init__(self):
        for name in ("current_mood", "stress_level"):
            value = getattr(self, name)
            if not isinstance(value, int) or not 1 <= value <= 10:
                raise ValueError(f"{name} must be an integer between 1 and 10")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserAssessment":
        """Build from the stored onboarding payload (camelCase keys)."""
        return cls(
            current_mood=int(data["currentMood"]),
            stress_level=int(data["stressLevel"]),
            primary_goals=list(data.get("primaryGoals") or []),
            previous_therapy=data.get("previousTherapy") or None,
            communication_style=data.get("communicationStyle") or None,
            specific_concerns=list(data.get("specificConcerns") or []),
        )


def _get_presets_dir() -> Path:
    return Path(__file__).parent / "presets"


def _load_file(path: Path) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Preset file {path} must contain a mapping at top-level")
        return data


def available_presets() -> List[str]:
    """Names of all preset files shipped with the package."""
    presets_dir = _get_presets_dir()
    names = {p.stem for pattern in ("*.yaml", "*.yml", "*.json") for p in presets_dir.glob(pattern)}
    return sorted(names)


def load_preset(preset_name: Optional[str]) -> Dict[str, Any]:
    """
    Load a personality preset.

    Resolution order:
    1) <name>.yaml / <name>.yml / <name>.json
    2) the compassionate preset
    3) hardcoded fallback
    """
    presets_dir = _get_presets_dir()

    for name in (preset_name, DEFAULT_PRESET):
        if not name:
            continue
        for suffix in (".yaml", ".yml", ".json"):
            candidate = presets_dir / f"{name}{suffix}"
            if candidate.exists():
                if name != preset_name:
                    logger.warning("Unknown therapist preset, using default", preset=preset_name)
                return _load_file(candidate)

    return {"name": DEFAULT_PRESET, "prompt": FALLBACK_PROMPT}


def _format_assessment(assessment: UserAssessment) -> str:
    goals = ", ".join(assessment.primary_goals) or "Not specified"
    concerns = ", ".join(assessment.specific_concerns) or "None specified"
    return f"""User Context (use this to personalize your approach):
- Current mood level: {assessment.current_mood}/10
- Stress level: {assessment.stress_level}/10
- Primary goals: {goals}
- Therapy experience: {assessment.previous_therapy or 'Not specified'}
- Communication preference: {assessment.communication_style or 'Not specified'}
- Specific concerns: {concerns}

Adjust your tone and approach based on their mood and stress levels. Focus on their stated goals and be mindful of their therapy experience level."""


def build_instructions(
    preset: Optional[str] = None,
    assessment: Optional[UserAssessment] = None,
    custom_instructions: Optional[str] = None,
) -> str:
    """
    Compose the full system instruction string.

    Args:
        preset: Personality preset id (defaults to compassionate)
        assessment: Optional onboarding assessment
        custom_instructions: Optional free text appended last

    Returns:
        Complete instruction string
    """
    base = load_preset(preset).get("prompt", FALLBACK_PROMPT).strip()
    parts = [base, GUIDELINES]

    if assessment is not None:
        parts.append(_format_assessment(assessment))

    if custom_instructions and custom_instructions.strip():
        parts.append(f"Additional personalized instructions:\n{custom_instructions.strip()}")

    return "\n\n".join(parts)
