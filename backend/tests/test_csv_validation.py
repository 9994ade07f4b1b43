# backend/tests/test_csv_validation.py
import pytest

from csv_validation import (
    CsvValidationError, missing_columns, validate_master_request, validate_questions, validate_rows,
    validate_simple_rows,
)
from questions import MYPREOP_COLUMNS, Question, QuestionOption

def _q(qid, section="Health", item_type="text-field", n_options=0, **kw):
    kw.setdefault("options", [QuestionOption(value=f"Option {i}") for i in range(n_options)])
    kw.setdefault("question_text", f"Question {qid}")
    return Question(id=qid, section=section, item_type=item_type, **kw)

def test_warnings_accumulate_without_errors():
    result = validate_questions([
        _q("Q1", section="Main", item_type="radio", n_options=25),
        _q("Q2", section="Main"),
        _q("Q3", section="Lonely"),
    ], max_questions=2000)
    assert len(result.questions) == 3
    assert "Question Q1: More than 20 options may affect usability" in result.warnings
    assert 'Section "Lonely" has only 1 question' in result.warnings

def test_soft_warnings():
    result = validate_questions([
        _q("Q1", n_options=2),
        _q("Q2", has_helper=True),
        _q("Q3", item_type="checkbox", options=[QuestionOption(value="x" * 101), QuestionOption(value="ok")]),
    ], max_questions=10)
    assert result.warnings == [
        "Question Q1: text-field type typically has no options, but 2 were provided",
        "Question Q2: HasHelper is TRUE but HelperType is empty",
        "Question Q2: HasHelper is TRUE but HelperValue is empty",
        "Question Q3: Option 1 exceeds 100 characters",
    ]

@pytest.mark.parametrize("questions,message", [
    ([], "No valid questions found in CSV"),
    ([_q("Q1"), _q("Q2"), _q("Q3")], "CSV file exceeds maximum of 2 questions"),
    ([_q("")], "Question Id is empty"),
    ([_q("Q1", section="")], "Question Q1: Section is empty"),
    ([_q("Q1", item_type="")], "Question Q1: ItemType is required"),
    ([_q("Q1", item_type="radio", n_options=1)], "Question Q1: radio type requires at least 2 options (found 1)"),
    ([_q("Q1", question_text="x" * 1001)], "Question Q1: Question text exceeds 1000 character limit"),
])
def test_hard_errors(questions, message):
    with pytest.raises(CsvValidationError) as exc:
        validate_questions(questions, max_questions=2)
    assert str(exc.value) == message

def test_unknown_item_type_lists_allowed_set():
    with pytest.raises(CsvValidationError, match=r'ItemType must be one of: .*radio.* \(got "dropdown"\)'):
        validate_questions([_q("Q1", item_type="dropdown")], max_questions=5)

def test_first_error_wins():
    with pytest.raises(CsvValidationError) as exc:
        validate_questions([_q("Q1", section=""), _q("")], max_questions=5)
    assert str(exc.value) == "Question Q1: Section is empty"

def test_cap_is_a_parameter():
    qs = [_q(f"Q{i}") for i in range(600)]
    assert len(validate_questions(qs, max_questions=2000).questions) == 600
    with pytest.raises(CsvValidationError):
        validate_questions(qs, max_questions=500)

def test_master_request_checks_name_before_size():
    with pytest.raises(CsvValidationError) as exc:
        validate_master_request("", [{}] * 501, max_questions=500)
    assert str(exc.value) == "Questionnaire name is required"
    with pytest.raises(CsvValidationError) as exc:
        validate_master_request("Named", [{}] * 501, max_questions=500)
    assert str(exc.value) == "Maximum 500 questions allowed"
    validate_master_request("Named", [{}], max_questions=500)

def test_validate_rows_columns_and_empty():
    assert missing_columns(MYPREOP_COLUMNS) == []
    assert missing_columns(["Id", "Section"])[:2] == ["Page", "ItemType"]
    with pytest.raises(CsvValidationError, match="Missing required columns: Page"):
        validate_rows([{"Id": "1"}], ["Id", "Section"], max_questions=10)
    with pytest.raises(CsvValidationError, match="CSV file contains no data rows"):
        validate_rows([], MYPREOP_COLUMNS, max_questions=10)

def test_validate_rows_groups_then_validates():
    rows = [
        {"Id": "1", "Section": "A", "ItemType": "radio", "Question": "Q", "Option": "Yes"},
        {"Id": "1", "Section": "A", "ItemType": "radio", "Question": "Q", "Option": "No"},
        {"Id": "", "Section": "A", "ItemType": "radio", "Question": "ignored", "Option": "x"},
        {"Id": "2", "Section": "A", "ItemType": "age", "Question": "Age"},
    ]
    result = validate_rows(rows, MYPREOP_COLUMNS, max_questions=10)
    assert [q.id for q in result.questions] == ["1", "2"]
    assert result.warnings == []

def _simple(qid="S1", **kw):
    row = {"Question_ID": qid, "Category": "General", "Question_Text": "Text", "Answer_Type": "text",
           "Answer_Options": ""}
    row.update(kw)
    return row

@pytest.mark.parametrize("rows,message", [
    ([_simple(Question_ID=" ")], "Row 2: Question_ID is empty"),
    ([_simple(), _simple("S2", Category="")], "Row 3: Category is empty"),
    ([_simple(Question_Text="")], "Row 2: Question_Text is empty"),
    ([_simple(Question_Text="x" * 1001)], "Row 2: Question_Text exceeds 1000 character limit"),
    ([_simple(), _simple()], "Duplicate Question_ID found: S1"),
    ([_simple(Answer_Type="")], "Row 2: Answer_Type is required"),
    ([_simple(Answer_Type="dropdown")], 'Row 2: Answer_Type must be one of: text, radio, multi_select (got "dropdown")'),
    ([_simple(Answer_Options="a|b")], 'Row 2: Answer_Options must be empty for "text" type questions'),
    ([_simple(Answer_Type="multi_select", Answer_Options="a| ")],
     'Row 2: Answer_Options must have at least 2 options for "multi_select" type (found 1)'),
])
def test_simple_rows_hard_errors(rows, message):
    with pytest.raises(CsvValidationError) as exc:
        validate_simple_rows(rows, max_questions=500)
    assert str(exc.value) == message

def test_simple_rows_warnings_and_questions():
    many = "|".join(f"Choice {i}" for i in range(21))
    result = validate_simple_rows([
        _simple("S1", Answer_Type="Radio", Answer_Options=many),
        _simple("S2", Answer_Type="radio", Answer_Options="Yes|" + "n" * 101),
        _simple("S3", Category="Other"),
    ], max_questions=500)
    assert result.warnings == [
        "Row 2 (S1): More than 20 options may affect usability",
        "Row 3 (S2): Option 2 exceeds 100 characters",
        'Category "Other" has only 1 question',
    ]
    assert [len(q.options) for q in result.questions] == [21, 2, 0]
    assert result.questions[0].item_type == "radio"
