"""
Score tiers and display magnitudes.

Every tier label shown for a persona comes from here. Thresholds are
shared by both score kinds; only the label above 100 differs.
Magnitude is for progress bars and never feeds tier classification.
"""

from enum import Enum
from typing import Dict, Any

from backend.models.project_persona import ProjectPersona


MAGNITUDE_FULL_SCALE = 25.0


class ScoreKind(str, Enum):
    PROFESSIONALISM = "professionalism"
    QUALITY = "quality"


class TierLabel(str, Enum):
    ISSUES = "Issues"
    STANDARD = "Standard"
    SENIOR = "Senior"
    ELITE = "Elite"
    ULTRA_MEGA = "Ultra Mega"
    MASTER = "Master"


# (exclusive upper bound, label), checked in order
_TIER_BOUNDS = (
    (0.0, TierLabel.ISSUES),
    (10.0, TierLabel.STANDARD),
    (25.0, TierLabel.SENIOR),
    (100.0, TierLabel.ELITE),
)

_TOP_TIER = {
    ScoreKind.PROFESSIONALISM: TierLabel.ULTRA_MEGA,
    ScoreKind.QUALITY: TierLabel.MASTER,
}


def tier(score: float, kind: ScoreKind) -> TierLabel:
    """Classify a score into its display tier"""
    for upper, label in _TIER_BOUNDS:
        if score < upper:
            return label
    return _TOP_TIER[ScoreKind(kind)]


def normalized_magnitude(score: float) -> float:
    """Fraction of the progress bar to fill, clamped to [0, 1]"""
    return max(0.0, min(1.0, score / MAGNITUDE_FULL_SCALE))


def score_summary(persona: ProjectPersona) -> Dict[str, Any]:
    """Tiers and magnitudes for both of a persona's scores"""
    return {
        kind.value: {
            "score": score,
            "tier": tier(score, kind).value,
            "magnitude": normalized_magnitude(score),
        }
        for kind, score in (
            (ScoreKind.PROFESSIONALISM, persona.professionalism_score),
            (ScoreKind.QUALITY, persona.quality_score),
        )
    }
