from dataclasses import dataclass
from typing import Any, Optional, Sequence
from coursehub.core.errors import DegenerateExam, InvalidInput

@dataclass(frozen=True)
class GradeResult:
    earned_points: int
    total_points: int
    percentage: int

def round_half_up(numerator: int, denominator: int) -> int:
    """round(numerator / denominator) with halves going up, in integers."""
    return (2 * numerator + denominator) // (2 * denominator)

def percent(part: int, whole: int) -> int:
    return round_half_up(100 * part, whole)

def grade(questions: Sequence[Any], answers: Sequence[Optional[int]]) -> GradeResult:
    """Score an answer vector against an exam's answer key.

    ``questions`` need ``points`` and ``correct_answer`` (option index);
    ``answers`` holds one choice index or ``None`` per question, in order.
    Unanswered slots never match.
    """
    if not questions:
        raise DegenerateExam("Exam has no questions")
    if len(answers) != len(questions):
        raise InvalidInput(f"Expected {len(questions)} answers, got {len(answers)}")
    earned = total = 0
    for question, answer in zip(questions, answers):
        total += question.points
        if answer is not None and answer == question.correct_answer:
            earned += question.points
    if total == 0:
        raise DegenerateExam("Exam questions carry zero total points")
    return GradeResult(earned_points=earned, total_points=total, percentage=percent(earned, total))

def is_passing(score: int, passing_score: int) -> bool:
    return score >= passing_score
