# questions.py
"""Question assembly from uploaded CSV rows.

MyPreOp uploads carry one row per option: every row of a question repeats the
same ``Id`` and the question-level columns are read from the first row.
The simple upload shape carries one row per question with pipe-separated
options.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ItemType(str, Enum):
    RADIO = "radio"
    CHECKBOX = "checkbox"
    TEXT_FIELD = "text-field"
    TEXT_AREA = "text-area"
    TEXT_PARAGRAPH = "text-paragraph"
    PHONE_NUMBER = "phone-number"
    AGE = "age"
    NUMBER_INPUT = "number-input"
    ALLERGY_LIST = "allergy-list"


ITEM_TYPES = frozenset(t.value for t in ItemType)
REQUIRES_OPTIONS = frozenset({ItemType.RADIO.value, ItemType.CHECKBOX.value})
FORBIDS_OPTIONS = ITEM_TYPES - REQUIRES_OPTIONS

# answer types accepted by the simple (one row per question) upload shape
SIMPLE_ANSWER_TYPES = ("text", "radio", "multi_select")
CHOICE_TYPES = REQUIRES_OPTIONS | {"multi_select"}

MYPREOP_COLUMNS = (
    "Id", "Section", "Page", "ItemType", "Question", "Option", "Characteristic",
    "Required", "EnableWhen", "HasHelper", "HelperType", "HelperName", "HelperValue",
)


class QuestionOption(BaseModel):
    value: str
    characteristic: Optional[str] = None


class Question(BaseModel):
    id: str
    section: str = ""
    page: str = ""
    item_type: str = ""
    question_text: str = ""
    options: List[QuestionOption] = []
    characteristic: Optional[str] = None
    required: bool = False
    enable_when: Optional[str] = None
    has_helper: bool = False
    helper_type: Optional[str] = None
    helper_name: Optional[str] = None
    helper_value: Optional[str] = None


def _cell(row: Mapping[str, object], key: str) -> str:
    value = row.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _flag(row: Mapping[str, object], key: str) -> bool:
    return _cell(row, key).lower() == "true"


def group_rows(rows: Iterable[Mapping[str, object]]) -> Dict[str, List[Mapping[str, object]]]:
    """Group rows by ``Id`` keeping first-seen id order and row order within a group.

    Rows with a blank ``Id`` are dropped.
    """
    groups: Dict[str, List[Mapping[str, object]]] = {}
    for row in rows:
        qid = _cell(row, "Id")
        if not qid:
            logger.debug("dropping row without Id: %r", row)
            continue
        groups.setdefault(qid, []).append(row)
    return groups


def rows_to_question(rows: List[Mapping[str, object]]) -> Question:
    """Build one question from the rows sharing an ``Id``."""
    if not rows:
        raise ValueError("Cannot create question from empty rows")
    first = rows[0]

    options: List[QuestionOption] = []
    bare_rows = []
    for row in rows:
        value = _cell(row, "Option")
        if value:
            options.append(QuestionOption(value=value, characteristic=_cell(row, "Characteristic") or None))
        else:
            bare_rows.append(row)

    characteristic = None
    if len(bare_rows) == 1:
        characteristic = _cell(bare_rows[0], "Characteristic") or None

    has_helper = _flag(first, "HasHelper")
    return Question(
        id=_cell(first, "Id"),
        section=_cell(first, "Section"),
        page=_cell(first, "Page"),
        item_type=_cell(first, "ItemType").lower(),
        question_text=_cell(first, "Question"),
        options=options,
        characteristic=characteristic,
        required=_flag(first, "Required"),
        enable_when=_cell(first, "EnableWhen") or None,
        has_helper=has_helper,
        helper_type=(_cell(first, "HelperType") or None) if has_helper else None,
        helper_name=(_cell(first, "HelperName") or None) if has_helper else None,
        helper_value=(_cell(first, "HelperValue") or None) if has_helper else None,
    )


def assemble_questions(rows: Iterable[Mapping[str, object]]) -> List[Question]:
    """Turn MyPreOp rows into questions, one per distinct ``Id``."""
    return [rows_to_question(group) for group in group_rows(rows).values()]


def split_pipe(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split("|") if part.strip()]


def simple_rows_to_questions(rows: Iterable[Mapping[str, object]]) -> List[Question]:
    """Convert simple-shape rows (pipe-separated options) into questions.

    ``Category`` fills both section and page; rows without ``Question_ID`` are skipped.
    An optional ``Characteristic`` column holds one token for text questions or
    pipe-separated tokens aligned with the options.
    """
    out = []
    for row in rows:
        qid = _cell(row, "Question_ID")
        if not qid:
            continue
        category = _cell(row, "Category")
        values = split_pipe(_cell(row, "Answer_Options"))
        tokens = [t.strip() for t in _cell(row, "Characteristic").split("|")]
        characteristic = None
        if not values and len(tokens) == 1:
            characteristic = tokens[0] or None
        options = [
            QuestionOption(value=v, characteristic=(tokens[i] if i < len(tokens) else "") or None)
            for i, v in enumerate(values)
        ]
        out.append(Question(
            id=qid,
            section=category,
            page=category,
            item_type=_cell(row, "Answer_Type").lower(),
            question_text=_cell(row, "Question_Text"),
            options=options,
            characteristic=characteristic,
        ))
    return out
