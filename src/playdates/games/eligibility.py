"""Skill-band eligibility.

A band with no bounds admits everyone. Once either bound is set, a player
must have a recorded rating, and that rating must fall inside the band by
tier order.
"""

from __future__ import annotations

from playdates.db.enums import SkillTier
from playdates.errors import ValidationError


def is_eligible(
    skill: SkillTier | None,
    band_min: SkillTier | None = None,
    band_max: SkillTier | None = None,
) -> bool:
    """Return True if a player with ``skill`` may join a game with this band."""
    if band_min is None and band_max is None:
        return True
    if skill is None:
        return False
    if band_min is not None and skill.rank < band_min.rank:
        return False
    if band_max is not None and skill.rank > band_max.rank:
        return False
    return True


def validate_skill_band(band_min: SkillTier | None, band_max: SkillTier | None) -> None:
    """Raise ValidationError if the lower bound ranks above the upper bound."""
    if band_min is not None and band_max is not None and band_min.rank > band_max.rank:
        raise ValidationError.for_field(
            "skill_max",
            "Maximum skill level must be greater than or equal to minimum skill level",
        )


def parse_tier(value: str | None) -> SkillTier | None:
    """Convert a stored tier label back to a SkillTier (None stays None)."""
    return SkillTier(value) if value is not None else None
