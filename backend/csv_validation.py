# csv_validation.py
"""Whole-questionnaire validation for uploads.

Hard errors raise :class:`CsvValidationError` on the first problem found;
warnings are collected over the whole batch and returned with the questions.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel

from questions import (
    FORBIDS_OPTIONS,
    ITEM_TYPES,
    MYPREOP_COLUMNS,
    REQUIRES_OPTIONS,
    SIMPLE_ANSWER_TYPES,
    Question,
    group_rows,
    rows_to_question,
    simple_rows_to_questions,
    split_pipe,
)

logger = logging.getLogger(__name__)

MAX_QUESTION_TEXT_LENGTH = 1000
MAX_OPTIONS_BEFORE_WARNING = 20
MAX_OPTION_LENGTH = 100
MIN_CHOICE_OPTIONS = 2


class CsvValidationError(ValueError):
    """A hard validation error; ``str(err)`` is the user-facing message."""


class ValidationResult(BaseModel):
    questions: List[Question]
    warnings: List[str] = []


def _fail(message: str) -> None:
    logger.debug("validation rejected batch: %s", message)
    raise CsvValidationError(message)


def missing_columns(columns: Iterable[str], required: Sequence[str] = MYPREOP_COLUMNS) -> List[str]:
    present = {c.strip() for c in columns}
    return [c for c in required if c not in present]


def _section_warnings(sections: Iterable[str], label: str) -> List[str]:
    counts = Counter(sections)
    return [f'{label} "{name}" has only 1 question' for name, count in counts.items() if count == 1]


def validate_questions(questions: Sequence[Question], max_questions: int) -> ValidationResult:
    """Validate assembled MyPreOp questions.

    Args:
        questions (Sequence[Question]): Output of ``assemble_questions``.
        max_questions (int): Upload cap for this surface.

    Returns:
        ValidationResult: The questions plus accumulated warnings.

    Raises:
        CsvValidationError: On the first hard error.
    """
    if not questions:
        _fail("No valid questions found in CSV")
    if len(questions) > max_questions:
        _fail(f"CSV file exceeds maximum of {max_questions} questions")

    warnings: List[str] = []
    for q in questions:
        if not q.id:
            _fail("Question Id is empty")
        if not q.section:
            _fail(f"Question {q.id}: Section is empty")
        if not q.item_type:
            _fail(f"Question {q.id}: ItemType is required")
        if q.item_type not in ITEM_TYPES:
            allowed = ", ".join(sorted(ITEM_TYPES))
            _fail(f'Question {q.id}: ItemType must be one of: {allowed} (got "{q.item_type}")')

        if q.item_type in REQUIRES_OPTIONS and len(q.options) < MIN_CHOICE_OPTIONS:
            _fail(f"Question {q.id}: {q.item_type} type requires at least {MIN_CHOICE_OPTIONS} options "
                  f"(found {len(q.options)})")
        if q.item_type in FORBIDS_OPTIONS and q.options:
            warnings.append(f"Question {q.id}: {q.item_type} type typically has no options, "
                            f"but {len(q.options)} were provided")

        if q.has_helper:
            if not q.helper_type:
                warnings.append(f"Question {q.id}: HasHelper is TRUE but HelperType is empty")
            if not q.helper_value:
                warnings.append(f"Question {q.id}: HasHelper is TRUE but HelperValue is empty")

        if len(q.question_text) > MAX_QUESTION_TEXT_LENGTH:
            _fail(f"Question {q.id}: Question text exceeds {MAX_QUESTION_TEXT_LENGTH} character limit")

        if len(q.options) > MAX_OPTIONS_BEFORE_WARNING:
            warnings.append(f"Question {q.id}: More than {MAX_OPTIONS_BEFORE_WARNING} options may affect usability")
        for idx, opt in enumerate(q.options, start=1):
            if len(opt.value) > MAX_OPTION_LENGTH:
                warnings.append(f"Question {q.id}: Option {idx} exceeds {MAX_OPTION_LENGTH} characters")

    warnings.extend(_section_warnings((q.section for q in questions), "Section"))
    return ValidationResult(questions=list(questions), warnings=warnings)


def validate_rows(rows: Sequence[Mapping[str, object]], columns: Iterable[str], max_questions: int) -> ValidationResult:
    """Column check, grouping and validation for a MyPreOp upload."""
    missing = missing_columns(columns)
    if missing:
        _fail(f"Missing required columns: {', '.join(missing)}")
    if not rows:
        _fail("CSV file contains no data rows")
    groups = group_rows(rows)
    if len(groups) > max_questions:
        _fail(f"CSV file exceeds maximum of {max_questions} questions")
    return validate_questions([rows_to_question(g) for g in groups.values()], max_questions)


# ------------------------
# Simple shape (one row per question)
# ------------------------
def validate_master_request(name: Optional[str], rows: Optional[Sequence[Mapping[str, object]]],
                            max_questions: int) -> None:
    """Request-level checks for master creation, in order: name, presence, size."""
    if not (name or "").strip():
        _fail("Questionnaire name is required")
    if not rows:
        _fail("Questions array is required")
    if len(rows) > max_questions:
        _fail(f"Maximum {max_questions} questions allowed")


def validate_simple_rows(rows: Sequence[Mapping[str, object]], max_questions: int) -> ValidationResult:
    """Validate simple-shape rows (``Question_ID, Category, Question_Text, Answer_Type, Answer_Options``).

    Row numbers in messages count the CSV header as row 1.
    """
    if not rows:
        _fail("CSV file contains no data rows")
    if len(rows) > max_questions:
        _fail(f"CSV file exceeds maximum of {max_questions} questions")

    warnings: List[str] = []
    seen = set()
    for i, row in enumerate(rows):
        row_num = i + 2
        qid = str(row.get("Question_ID") or "").strip()
        category = str(row.get("Category") or "").strip()
        text = str(row.get("Question_Text") or "").strip()
        answer_type = str(row.get("Answer_Type") or "").strip().lower()
        raw_options = str(row.get("Answer_Options") or "").strip()

        if not qid:
            _fail(f"Row {row_num}: Question_ID is empty")
        if not category:
            _fail(f"Row {row_num}: Category is empty")
        if not text:
            _fail(f"Row {row_num}: Question_Text is empty")
        if len(text) > MAX_QUESTION_TEXT_LENGTH:
            _fail(f"Row {row_num}: Question_Text exceeds {MAX_QUESTION_TEXT_LENGTH} character limit")
        if qid in seen:
            _fail(f"Duplicate Question_ID found: {qid}")
        seen.add(qid)

        if not answer_type:
            _fail(f"Row {row_num}: Answer_Type is required")
        if answer_type not in SIMPLE_ANSWER_TYPES:
            _fail(f"Row {row_num}: Answer_Type must be one of: {', '.join(SIMPLE_ANSWER_TYPES)} "
                  f'(got "{row.get("Answer_Type")}")')

        if answer_type == "text":
            if raw_options:
                _fail(f'Row {row_num}: Answer_Options must be empty for "text" type questions')
            continue

        options = split_pipe(raw_options)
        if len(options) < MIN_CHOICE_OPTIONS:
            _fail(f'Row {row_num}: Answer_Options must have at least {MIN_CHOICE_OPTIONS} options '
                  f'for "{answer_type}" type (found {len(options)})')
        if len(options) > MAX_OPTIONS_BEFORE_WARNING:
            warnings.append(f"Row {row_num} ({qid}): More than {MAX_OPTIONS_BEFORE_WARNING} options may affect usability")
        for idx, opt in enumerate(options, start=1):
            if len(opt) > MAX_OPTION_LENGTH:
                warnings.append(f"Row {row_num} ({qid}): Option {idx} exceeds {MAX_OPTION_LENGTH} characters")

    warnings.extend(_section_warnings((str(r.get("Category") or "").strip() for r in rows), "Category"))
    return ValidationResult(questions=simple_rows_to_questions(rows), warnings=warnings)

