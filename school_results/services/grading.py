# school_results/services/grading.py
"""Score arithmetic shared by every write path: totals, WAEC grades, ranks."""
from typing import Dict, List, Optional, Sequence

from ..core.exceptions import ValidationError

# Component maxima; the four add up to 100
SCORE_LIMITS: Dict[str, int] = {
    "assessment1": 15,
    "assessment2": 15,
    "ca_test": 10,
    "exam_score": 60,
}
SCORE_FIELDS = tuple(SCORE_LIMITS)

# (minimum total, grade), checked top-down
GRADE_SCALE = (
    (75, "A1"),
    (70, "B2"),
    (65, "B3"),
    (60, "C4"),
    (55, "C5"),
    (50, "C6"),
    (45, "D7"),
    (40, "E8"),
    (0, "F9"),
)
GRADES = tuple(grade for _, grade in GRADE_SCALE)
PASS_MARK = 40

GRADE_REMARKS = {
    "A1": "Excellent",
    "B2": "Very Good",
    "B3": "Good",
    "C4": "Credit",
    "C5": "Credit",
    "C6": "Credit",
    "D7": "Pass",
    "E8": "Pass",
    "F9": "Fail",
}


def compute_total(assessment1: float, assessment2: float, ca_test: float, exam_score: float) -> float:
    return round(assessment1 + assessment2 + ca_test + exam_score, 2)


def grade_for_total(total: float) -> str:
    for minimum, grade in GRADE_SCALE:
        if total >= minimum:
            return grade
    return "F9"


def remark_for_grade(grade: str) -> str:
    return GRADE_REMARKS.get(grade, "Unknown")


def validate_components(scores: Dict[str, Optional[float]]):
    """Reject any component outside 0..max. Values are never clamped."""
    for field, value in scores.items():
        if value is None:
            continue
        limit = SCORE_LIMITS[field]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"{field} must be a number", field=field)
        if value < 0 or value > limit:
            raise ValidationError(f"{field} must be between 0 and {limit}", field=field)


def validate_attendance(days_present: Optional[int], days_school_opened: Optional[int]):
    for field, value in (("days_present", days_present), ("days_school_opened", days_school_opened)):
        if value is not None and value < 0:
            raise ValidationError(f"{field} cannot be negative", field=field)
    if days_present is not None and days_school_opened is not None and days_present > days_school_opened:
        raise ValidationError("days_present cannot exceed days_school_opened", field="days_present")


def derive_fields(assessment1: float, assessment2: float, ca_test: float, exam_score: float) -> Dict[str, object]:
    total = compute_total(assessment1, assessment2, ca_test, exam_score)
    return {"total_score": total, "grade": grade_for_total(total)}


def competition_rank(scores: Sequence[float]) -> List[int]:
    """Standard competition ranking, highest first: [90, 90, 85, 70] -> [1, 1, 3, 4].

    Positions are returned in the order of ``scores``.
    """
    order = sorted(range(len(scores)), key=lambda i: scores[i], reverse=True)
    positions = [0] * len(scores)
    previous = None
    rank = 0
    for seen, index in enumerate(order, start=1):
        if scores[index] != previous:
            rank = seen
            previous = scores[index]
        positions[index] = rank
    return positions
