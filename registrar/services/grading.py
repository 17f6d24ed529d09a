"""Grade ledger (criteria and scores) and the per-line grade finalizer."""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from flask import current_app
from sqlalchemy import select, delete

from ..extensions import db
from ..errors import RegistrarError, ValidationFailed, OutOfRange, NoScores, RecordsSealed
from ..models import TeachingAssignment, EnrollmentLine, GradingCriterion, Score, FinalGrade
from ..models.enrollment import utcnow
from . import unit_of_work, get_or_raise

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")


@dataclass
class ScoreOutcome:
    """Result of one entry of a batch score submission."""
    index: int
    line_id: Optional[int]
    criterion_id: Optional[int]
    applied: bool
    error: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self):
        return {"index": self.index, "line_id": self.line_id,
                "criterion_id": self.criterion_id, "applied": self.applied,
                "error": self.error, "message": self.message}


# ---------- pure helpers ----------

def weighted_average(pairs):
    """Weighted mean of ``(value, weight)`` pairs, rounded half-up to 2 places.

    A weight of ``None`` counts as 1.
    """
    total = Decimal(0)
    weights = Decimal(0)
    for value, weight in pairs:
        w = Decimal(str(1 if weight is None else weight))
        total += Decimal(str(value)) * w
        weights += w
    if not weights:
        raise ValueError("weighted_average needs at least one weighted value")
    return float((total / weights).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def verdict_for(grade, passing=13):
    return "passed" if grade >= passing else "failed"


def _passing_grade():
    return current_app.config.get("PASSING_GRADE", 13)


def _check_value(value):
    lo = current_app.config.get("SCORE_MIN", 0)
    hi = current_app.config.get("SCORE_MAX", 20)
    if isinstance(value, bool):
        raise OutOfRange(f"Score must be a number between {lo} and {hi}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise OutOfRange(f"Score must be a number between {lo} and {hi}")
    if not lo <= number <= hi:
        raise OutOfRange(f"Score must be between {lo} and {hi}", value=number)
    return number


def _ensure_open(line):
    if line.final_grade is not None and line.final_grade.sealed:
        logger.warning("line %s: write rejected, final grade is sealed", line.id)
        raise RecordsSealed("The final grade of this line was already closed")
    if line.assignment is not None and line.assignment.closure is not None:
        logger.warning("line %s: write rejected, assignment %s is closed",
                       line.id, line.assignment_id)
        raise RecordsSealed(
            f"Grades for this course were closed in {line.assignment.closure.code}")


# ---------- criteria ----------

def list_criteria(assignment_id):
    assignment = get_or_raise(TeachingAssignment, assignment_id, "Teaching assignment")
    return list(assignment.criteria)


def replace_criteria(assignment_id, criteria):
    """Replace the evaluation scheme of an assignment.

    Prior criteria, and the scores recorded against them, are deleted.
    """
    if criteria is None:
        raise ValidationFailed("Criteria are required")
    cleaned = []
    for item in criteria:
        name = (item.get("name") or "").strip()
        weight = item.get("weight")
        weight = 1.0 if weight is None else weight
        if not name:
            raise ValidationFailed("Every criterion needs a name")
        if isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight <= 0:
            raise ValidationFailed(f"Weight of {name} must be greater than 0")
        cleaned.append((name, float(weight)))

    with unit_of_work():
        assignment = get_or_raise(TeachingAssignment, assignment_id, "Teaching assignment")
        if assignment.closure is not None:
            raise RecordsSealed(
                f"Grades for this course were closed in {assignment.closure.code}")
        old_ids = (select(GradingCriterion.id)
                   .where(GradingCriterion.assignment_id == assignment.id))
        db.session.execute(delete(Score).where(Score.criterion_id.in_(old_ids)))
        db.session.execute(
            delete(GradingCriterion).where(GradingCriterion.assignment_id == assignment.id))
        db.session.expire(assignment, ["criteria"])
        created = [GradingCriterion(assignment_id=assignment.id, name=name,
                                    weight=weight, order=i)
                   for i, (name, weight) in enumerate(cleaned, start=1)]
        db.session.add_all(created)
    logger.info("assignment %s criteria replaced (%d)", assignment_id, len(created))
    return created


# ---------- scores ----------

def _find_score(line_id, criterion_id):
    slot = (Score.criterion_id.is_(None) if criterion_id is None
            else Score.criterion_id == criterion_id)
    return db.session.execute(
        select(Score).where(Score.line_id == line_id, slot)
    ).scalar_one_or_none()


def _validate_entry(line_id, criterion_id, value):
    number = _check_value(value)
    line = get_or_raise(EnrollmentLine, line_id, "Enrollment line")
    _ensure_open(line)
    if criterion_id is not None:
        criterion = get_or_raise(GradingCriterion, criterion_id, "Criterion")
        if criterion.assignment_id != line.assignment_id:
            raise ValidationFailed(
                f"Criterion {criterion_id} does not belong to this line's course")
    return line, number


def _upsert(line, criterion_id, value, annotation, grader_id):
    score = _find_score(line.id, criterion_id)
    if score is None:
        score = Score(line_id=line.id, criterion_id=criterion_id, value=value,
                      annotation=annotation, recorded_by_id=grader_id)
        db.session.add(score)
    else:
        score.value = value
        score.annotation = annotation
        score.recorded_by_id = grader_id
    db.session.flush()
    return score


def record_score(line_id, value, criterion_id=None, annotation=None, grader_id=None):
    """Insert or overwrite the score of a line for one criterion (or the single-grade slot)."""
    with unit_of_work():
        line, number = _validate_entry(line_id, criterion_id, value)
        score = _upsert(line, criterion_id, number, annotation, grader_id)
    return score


def record_scores(entries, grader_id=None):
    """Apply a batch of scores and report an outcome per entry.

    Invalid entries are skipped and returned with their error; valid
    ones are saved together.
    """
    if not isinstance(entries, list):
        raise ValidationFailed("Scores are required")
    outcomes = []
    with unit_of_work():
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict):
                outcomes.append(ScoreOutcome(i, None, None, False, "ValidationFailed",
                                             "Each score entry must be an object"))
                continue
            line_id = entry.get("line_id")
            criterion_id = entry.get("criterion_id")
            try:
                line, number = _validate_entry(line_id, criterion_id, entry.get("value"))
            except RegistrarError as exc:
                outcomes.append(ScoreOutcome(i, line_id, criterion_id, False,
                                             exc.kind, exc.message))
                continue
            _upsert(line, criterion_id, number, entry.get("annotation"), grader_id)
            outcomes.append(ScoreOutcome(i, line_id, criterion_id, True))
    rejected = sum(1 for o in outcomes if not o.applied)
    if rejected:
        logger.warning("batch scores: %d of %d entries rejected", rejected, len(outcomes))
    return outcomes


def line_scores(line_id):
    line = get_or_raise(EnrollmentLine, line_id, "Enrollment line")
    scores = sorted(line.scores, key=lambda s: (s.criterion is not None,
                                                s.criterion.order if s.criterion else 0))
    return line, scores


# ---------- finalizer ----------

def finalize_line(line_id):
    """Compute, store and return the final grade of a line."""
    with unit_of_work():
        line = get_or_raise(EnrollmentLine, line_id, "Enrollment line")
        _ensure_open(line)
        pairs = [(s.value, s.weight) for s in line.scores]
        if not pairs:
            raise NoScores("There are no scores recorded to compute the average")
        value = weighted_average(pairs)
        verdict = verdict_for(value, _passing_grade())

        final = line.final_grade
        if final is None:
            final = FinalGrade(value=value, verdict=verdict)
            line.final_grade = final
        else:
            final.value = value
            final.verdict = verdict
            final.computed_at = utcnow()
        line.status = verdict
    logger.info("line %s finalized: %.2f %s", line_id, value, verdict)
    return final
