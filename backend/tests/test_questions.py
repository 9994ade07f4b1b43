# backend/tests/test_questions.py
from questions import assemble_questions, group_rows, rows_to_question, simple_rows_to_questions
import pytest

def _row(qid, option="", characteristic="", **kw):
    row = {"Id": qid, "Section": "Health", "Page": "P1", "ItemType": "Radio", "Question": f"Question {qid}",
           "Option": option, "Characteristic": characteristic, "Required": "false", "EnableWhen": "",
           "HasHelper": "FALSE", "HelperType": "", "HelperName": "", "HelperValue": ""}
    row.update(kw)
    return row

ROWS = [
    _row("Q1", "Yes", "smoker", Required="TRUE"),
    _row("Q2", "", "patient_age", ItemType="age"),
    _row("Q1", "No", "non_smoker"),
    _row("  ", "Stray", "stray"),
    _row("Q1", "Used to", ""),
]

def test_grouping_is_repeatable():
    assert assemble_questions(ROWS) == assemble_questions(ROWS)

def test_blank_ids_are_dropped():
    qs = assemble_questions(ROWS)
    assert [q.id for q in qs] == ["Q1", "Q2"]
    assert "Stray" not in [o.value for q in qs for o in q.options]
    assert "" not in group_rows(ROWS)

def test_option_order_follows_rows():
    q1 = assemble_questions(ROWS)[0]
    assert [o.value for o in q1.options] == ["Yes", "No", "Used to"]
    assert [o.characteristic for o in q1.options] == ["smoker", "non_smoker", None]

def test_question_fields_come_from_first_row():
    q1, q2 = assemble_questions(ROWS)
    assert q1.item_type == "radio"
    assert q1.required is True
    assert q1.characteristic is None
    assert q2.characteristic == "patient_age"
    assert q2.options == []
    assert q2.enable_when is None

def test_bare_characteristic_needs_exactly_one_optionless_row():
    q = rows_to_question([_row("Q3", "", "a"), _row("Q3", "", "b")])
    assert q.characteristic is None

def test_helper_fields_only_when_has_helper():
    q = rows_to_question([_row("Q4", HasHelper="true", HelperType="weblink", HelperName="Info",
                               HelperValue="https://example.org")])
    assert (q.has_helper, q.helper_type, q.helper_value) == (True, "weblink", "https://example.org")
    q = rows_to_question([_row("Q5", HelperType="weblink")])
    assert q.has_helper is False and q.helper_type is None

def test_rows_to_question_rejects_empty_group():
    with pytest.raises(ValueError):
        rows_to_question([])

def test_simple_rows_to_questions():
    qs = simple_rows_to_questions([
        {"Question_ID": "S1", "Category": "General", "Question_Text": "Pick", "Answer_Type": "Multi_Select",
         "Answer_Options": "Red | Blue|", "Characteristic": "likes_red|likes_blue"},
        {"Question_ID": "S2", "Category": "General", "Question_Text": "Name", "Answer_Type": "text",
         "Characteristic": "patient_name"},
        {"Question_ID": "", "Category": "General"},
    ])
    assert [q.id for q in qs] == ["S1", "S2"]
    s1, s2 = qs
    assert s1.item_type == "multi_select"
    assert s1.section == s1.page == "General"
    assert [(o.value, o.characteristic) for o in s1.options] == [("Red", "likes_red"), ("Blue", "likes_blue")]
    assert s2.options == [] and s2.characteristic == "patient_name"
