# backend/tests/test_enable_when.py
import pytest

from characteristics import build_characteristic_map
from enable_when import (
    Condition, EnableWhenExpression, evaluate_enable_when, facts_from_answers, is_enabled,
    parse_enable_when, translate_enable_when,
)
from questions import Question, QuestionOption, assemble_questions

def test_single_condition():
    expr = parse_enable_when("(patient_has_preferred_name=true)")
    assert expr.model_dump() == {
        "logic": None,
        "conditions": [{"characteristic": "patient_has_preferred_name", "operator": "=", "value": "true"}],
    }

def test_and_detection_without_space():
    expr = parse_enable_when("(patient_age<16) AND(patient_ageexistsnull)")
    assert expr.logic == "AND"
    assert expr.conditions == [Condition(characteristic="patient_age", operator="<", value="16")]

def test_or_detection():
    expr = parse_enable_when("(patient_ethnicity_white=true)OR (patient_ethnicity_mixed=true)")
    assert expr.logic == "OR"
    assert [c.characteristic for c in expr.conditions] == ["patient_ethnicity_white", "patient_ethnicity_mixed"]

def test_connective_is_case_insensitive():
    assert parse_enable_when("(a=1) and (b=2)").logic == "AND"

@pytest.mark.parametrize("raw", ["", "   ", None, "(no operator here)", "a=1", "(=1)", "(a=)"])
def test_blank_or_unparseable_returns_none(raw):
    assert parse_enable_when(raw) is None

def test_longest_operator_wins():
    ops = [c.operator for c in parse_enable_when("(a<=1) OR (b>=2) OR (c<3) OR (d>4)").conditions]
    assert ops == ["<=", ">=", "<", ">"]

def _end_to_end_questions():
    rows = [
        {"Id": "Q001", "Section": "About", "ItemType": "radio", "Question": "Gender", "Option": "Male",
         "Characteristic": "patient_is_male"},
        {"Id": "Q001", "Section": "About", "ItemType": "radio", "Question": "Gender", "Option": "Female",
         "Characteristic": "patient_is_female"},
        {"Id": "Q002", "Section": "About", "ItemType": "text-field", "Question": "Preferred name",
         "Option": "", "Characteristic": "patients_preferred_name", "EnableWhen": "(patient_is_male=true)"},
    ]
    return assemble_questions(rows)

def test_end_to_end_translation():
    qs = _end_to_end_questions()
    expr = parse_enable_when(qs[1].enable_when)
    tr = translate_enable_when(expr, build_characteristic_map(qs))
    assert len(tr.conditions) == 1
    c = tr.conditions[0]
    assert c.raw is False
    assert c.question_text == "Gender"
    assert c.option_text == "Male"
    assert "is answered" in tr.summary
    assert tr.summary == "shown when 'Gender' is answered 'Male'"

def test_translation_falls_back_to_raw():
    expr = parse_enable_when("(unknown_token=false) OR (patient_age>=18)")
    qs = [Question(id="A", question_text="Age", characteristic="patient_age")]
    tr = translate_enable_when(expr, build_characteristic_map(qs))
    raw, known = tr.conditions
    assert raw.raw is True and raw.readable == "unknown_token"
    assert raw.logical_op == "OR" and known.logical_op is None
    assert known.readable == "'Age' >= 18"
    assert tr.summary == "shown when unknown_token is not answered or 'Age' >= 18"

def test_translation_with_empty_map_never_raises():
    expr = parse_enable_when("(x=true) AND (y<2)")
    tr = translate_enable_when(expr, {})
    assert all(c.raw for c in tr.conditions)

def test_evaluate():
    expr = parse_enable_when("(patient_age<16) AND (patient_is_female=true)")
    assert evaluate_enable_when(expr, {"patient_age": "12", "patient_is_female": "true"}) is True
    assert evaluate_enable_when(expr, {"patient_age": 20, "patient_is_female": True}) is False
    assert evaluate_enable_when(expr, {"patient_age": "unknown", "patient_is_female": True}) is False
    assert evaluate_enable_when(None, {}) is True

    either = EnableWhenExpression(logic="OR", conditions=[
        Condition(characteristic="a", operator="=", value="false"),
        Condition(characteristic="b", operator="=", value="Yes"),
    ])
    assert evaluate_enable_when(either, {"a": "true", "b": "yes"}) is True
    assert evaluate_enable_when(either, {"a": "true", "b": "no"}) is False

def test_facts_from_answers_and_is_enabled():
    qs = _end_to_end_questions()
    facts = facts_from_answers(qs, {"Q001": "Male"})
    assert facts == {"patient_is_male": "true"}
    assert is_enabled(qs[1], facts) is True
    assert is_enabled(qs[1], facts_from_answers(qs, {"Q001": ["Female"]})) is False
    assert is_enabled(qs[0], {}) is True

def test_text_answer_becomes_fact():
    q = Question(id="age", characteristic="patient_age", options=[])
    assert facts_from_answers([q], {"age": "42"}) == {"patient_age": "42"}
    assert facts_from_answers([q], {"age": ""}) == {}

@pytest.mark.parametrize("raw", ["(a=true)(b=true)", "(a=1) ANDOR (b=2)", "(a=1) , (b=2) (c=3)"])
def test_several_conditions_without_connective_default_to_and(raw):
    expr = parse_enable_when(raw)
    assert len(expr.conditions) >= 2
    assert expr.logic == "AND"
