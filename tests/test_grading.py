from types import SimpleNamespace
import pytest
from coursehub.core.errors import DegenerateExam, InvalidInput
from coursehub.services.grading import grade, is_passing, percent, round_half_up

def q(points, correct):
    return SimpleNamespace(points=points, correct_answer=correct)

TWO = [q(1, 0), q(1, 1)]

def test_all_correct_scores_100_and_passes():
    r = grade(TWO, [0, 1])
    assert (r.earned_points, r.total_points, r.percentage) == (2, 2, 100)
    assert is_passing(r.percentage, 50)

def test_tie_with_passing_score_passes():
    r = grade(TWO, [0, 0])
    assert r.percentage == 50
    assert is_passing(r.percentage, 50)

def test_nothing_correct_fails():
    r = grade(TWO, [1, 0])
    assert r.percentage == 0
    assert not is_passing(r.percentage, 50)

def test_zero_total_points_is_degenerate():
    with pytest.raises(DegenerateExam):
        grade([q(0, 0)], [0])

def test_no_questions_is_degenerate():
    with pytest.raises(DegenerateExam):
        grade([], [])

def test_answer_length_mismatch():
    with pytest.raises(InvalidInput):
        grade(TWO, [0])

def test_unanswered_never_matches():
    r = grade(TWO, [None, None])
    assert r.earned_points == 0

def test_points_are_weighted():
    r = grade([q(1, 0), q(3, 2)], [1, 2])
    assert (r.earned_points, r.total_points, r.percentage) == (3, 4, 75)

def test_grading_is_deterministic():
    answers = [0, None]
    assert grade(TWO, answers) == grade(TWO, answers)

def test_half_up_rounding():
    assert round_half_up(1, 2) == 1
    assert round_half_up(5, 2) == 3
    assert percent(1, 3) == 33
    assert percent(2, 3) == 67
    # 100 * 1 / 8 = 12.5
    assert percent(1, 8) == 13
