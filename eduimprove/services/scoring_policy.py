"""
scoring_policy.py - Shared scoring defaults, thresholds and rounding

Every aggregation (quiz scoring, progress dashboard, weekly report, rankings)
reads its defaults and cut-offs from DEFAULT_POLICY so the numbers cannot
drift between call sites.
"""

import math
from dataclasses import dataclass
from typing import Optional

# Quiz-result tiers
TIER_STRONG = "strong"
TIER_PARTIAL = "partial"
TIER_WEAK = "weak"

# Session-level understanding levels, in display order
UNDERSTANDING_LEVELS = ("excellent", "good", "average", "weak")


def round_half_up(value: float) -> int:
    """Round .5 upwards (Python's round() would round half to even)."""
    return int(math.floor(value + 0.5))


def percentage(part: int, whole: int) -> int:
    """Whole-number percentage of part/whole, rounded half up. 0 when whole is 0."""
    if whole <= 0:
        return 0
    # Integer arithmetic: floor(100*part/whole + 1/2)
    return (200 * part + whole) // (2 * whole)


@dataclass(frozen=True)
class ScoringPolicy:
    default_improvement_score: int = 50
    default_understanding: str = "average"
    default_time_spent: int = 0
    strong_threshold: int = 70
    partial_threshold: int = 40
    # (minimum weighted score, grade), checked top-down
    grade_bands: tuple = ((85, "A+"), (75, "A"), (65, "B+"), (55, "B"), (45, "C"))
    lowest_grade: str = "D"
    # Weighting for the overall grade and the ranking total score
    score_weight: int = 4
    consistency_weight: int = 3
    quiz_weight: int = 3

    def improvement_score(self, value: Optional[float]) -> float:
        return self.default_improvement_score if value is None else value

    def understanding(self, value: Optional[str]) -> str:
        return value or self.default_understanding

    def time_spent(self, value: Optional[int]) -> int:
        return self.default_time_spent if value is None else value

    def quiz_tier(self, accuracy: float) -> str:
        if accuracy >= self.strong_threshold:
            return TIER_STRONG
        if accuracy >= self.partial_threshold:
            return TIER_PARTIAL
        return TIER_WEAK

    def weighted_score(self, avg_score: float, consistency: float, quiz_accuracy: float) -> float:
        total_weight = self.score_weight + self.consistency_weight + self.quiz_weight
        return (
            self.score_weight * avg_score
            + self.consistency_weight * consistency
            + self.quiz_weight * quiz_accuracy
        ) / total_weight

    def grade(self, weighted: float) -> str:
        for minimum, grade in self.grade_bands:
            if weighted >= minimum:
                return grade
        return self.lowest_grade


DEFAULT_POLICY = ScoringPolicy()
