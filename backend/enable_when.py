# enable_when.py
"""EnableWhen: the conditional-visibility mini-language.

An expression is a flat list of parenthesized comparisons joined by a single
connective, e.g. ``(patient_age<16) AND(patient_is_female=true)``.
Parsing is purely syntactic; translation resolves each characteristic
against a :data:`characteristics.CharacteristicMap`.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Literal, Mapping, Optional, Sequence

from pydantic import BaseModel

from characteristics import CharacteristicMap
from questions import Question

logger = logging.getLogger(__name__)

Operator = Literal["=", "<", ">", "<=", ">="]
Logic = Literal["AND", "OR"]

_GROUP_RE = re.compile(r"\(([^()]*)\)")
# longest operator first so "<=" / ">=" win over "<" / ">"
_CONDITION_RE = re.compile(r"^([^()<>=]+)(<=|>=|=|<|>)(.*)$")
_CONNECTIVE_RE = re.compile(r"(?<![A-Za-z0-9_])(AND|OR)(?![A-Za-z0-9_])", re.IGNORECASE)


class Condition(BaseModel):
    characteristic: str
    operator: Operator
    value: str

    class Config:
        frozen = True


class EnableWhenExpression(BaseModel):
    logic: Optional[Logic] = None
    conditions: List[Condition]

    class Config:
        frozen = True


def _parse_condition(text: str) -> Optional[Condition]:
    m = _CONDITION_RE.match(text.strip())
    if not m:
        return None
    characteristic, operator, value = m.group(1).strip(), m.group(2), m.group(3).strip()
    if not characteristic or not value:
        return None
    return Condition(characteristic=characteristic, operator=operator, value=value)


def parse_enable_when(raw: Optional[str]) -> Optional[EnableWhenExpression]:
    """Parse a raw EnableWhen string.

    Groups that cannot be parsed are skipped. ``logic`` comes from the first
    AND/OR found between two groups (connectives inside a group are part of
    the characteristic). Several conditions with no readable connective
    default to ``"AND"``; a lone condition keeps ``None``.
    Returns ``None`` for blank input or when no condition survives.
    """
    if not raw or not raw.strip():
        return None

    conditions: List[Condition] = []
    logic: Optional[str] = None
    prev_end = None
    for m in _GROUP_RE.finditer(raw):
        if prev_end is not None and logic is None:
            conn = _CONNECTIVE_RE.search(raw[prev_end:m.start()])
            if conn:
                logic = conn.group(1).upper()
        prev_end = m.end()

        cond = _parse_condition(m.group(1))
        if cond is None:
            logger.debug("skipping unparseable condition %r in %r", m.group(0), raw)
            continue
        conditions.append(cond)

    if not conditions:
        return None
    if logic is None and len(conditions) > 1:
        logic = "AND"
    return EnableWhenExpression(logic=logic, conditions=conditions)


# ------------------------
# Translation
# ------------------------
class TranslatedCondition(BaseModel):
    characteristic: str
    operator: str
    value: str
    raw: bool
    readable: str
    question_text: Optional[str] = None
    option_text: Optional[str] = None
    logical_op: Optional[Logic] = None


class TranslatedEnableWhen(BaseModel):
    conditions: List[TranslatedCondition]
    logic: Optional[Logic] = None
    summary: str


def _comparison_text(operator: str, value: str) -> str:
    if operator == "=" and value == "true":
        return "is answered"
    if operator == "=" and value == "false":
        return "is not answered"
    return f"{operator} {value}"


def _phrase(cond: TranslatedCondition) -> str:
    comparison = _comparison_text(cond.operator, cond.value)
    if cond.raw:
        return f"{cond.characteristic} {comparison}"
    if cond.option_text is None:
        return f"'{cond.question_text}' {comparison}"
    if comparison in ("is answered", "is not answered"):
        return f"'{cond.question_text}' {comparison} '{cond.option_text}'"
    return f"'{cond.question_text}' option '{cond.option_text}' {comparison}"


def translate_enable_when(expr: EnableWhenExpression, char_map: CharacteristicMap) -> TranslatedEnableWhen:
    """Resolve every condition against ``char_map`` and build a readable summary.

    Characteristics missing from the map fall back to ``raw=True`` with the
    token itself as ``readable``.
    """
    translated: List[TranslatedCondition] = []
    last = len(expr.conditions) - 1
    for i, cond in enumerate(expr.conditions):
        logical_op = expr.logic if i < last else None
        source = char_map.get(cond.characteristic)
        if source is None:
            translated.append(TranslatedCondition(
                characteristic=cond.characteristic,
                operator=cond.operator,
                value=cond.value,
                raw=True,
                readable=cond.characteristic,
                logical_op=logical_op,
            ))
            continue
        tc = TranslatedCondition(
            characteristic=cond.characteristic,
            operator=cond.operator,
            value=cond.value,
            raw=False,
            readable="",
            question_text=source.question_text,
            option_text=source.option_value,
            logical_op=logical_op,
        )
        translated.append(tc.model_copy(update={"readable": _phrase(tc)}))

    connector = " or " if expr.logic == "OR" else " and "
    summary = "shown when " + connector.join(_phrase(c) for c in translated)
    return TranslatedEnableWhen(conditions=translated, logic=expr.logic, summary=summary)


# ------------------------
# Evaluation
# ------------------------
def _to_number(value) -> Optional[float]:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def _truthy(value) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    text = str(value).strip()
    return bool(text) and text.lower() != "false"


def _check(cond: Condition, facts: Mapping[str, object]) -> bool:
    actual = facts.get(cond.characteristic)
    if cond.operator == "=":
        if cond.value == "true":
            return _truthy(actual)
        if cond.value == "false":
            return not _truthy(actual)
        return actual is not None and str(actual).strip().lower() == cond.value.lower()

    left, right = _to_number(actual), _to_number(cond.value)
    if left is None or right is None:
        return False
    if cond.operator == "<":
        return left < right
    if cond.operator == ">":
        return left > right
    if cond.operator == "<=":
        return left <= right
    return left >= right


def evaluate_enable_when(expr: Optional[EnableWhenExpression], facts: Mapping[str, object]) -> bool:
    """Evaluate ``expr`` against characteristic facts; ``None`` means always enabled."""
    if expr is None or not expr.conditions:
        return True
    results = [_check(c, facts) for c in expr.conditions]
    return any(results) if expr.logic == "OR" else all(results)


def is_enabled(question: Question, facts: Mapping[str, object]) -> bool:
    return evaluate_enable_when(parse_enable_when(question.enable_when), facts)


def facts_from_answers(questions: Sequence[Question], answers: Mapping[str, object]) -> Dict[str, object]:
    """Derive characteristic facts from answers keyed by question id.

    A choice answer may be a single option value or a list of them; each
    selected option's characteristic becomes ``"true"``. Text-like answers
    are stored under the question's own characteristic.
    """
    facts: Dict[str, object] = {}
    for q in questions:
        if q.id not in answers:
            continue
        answer = answers[q.id]
        if q.options:
            selected = answer if isinstance(answer, (list, tuple, set)) else [answer]
            chosen = {str(s).strip() for s in selected if s is not None}
            for opt in q.options:
                if opt.characteristic and opt.value in chosen:
                    facts.setdefault(opt.characteristic, "true")
        elif q.characteristic and answer not in (None, ""):
            facts.setdefault(q.characteristic, answer)
    return facts
