# schemas.py
from pydantic import BaseModel
from typing import List, Optional, Literal

from enable_when import EnableWhenExpression, TranslatedEnableWhen
from suggestion_diff import SuggestionDiff

SuggestionStatus = Literal["pending", "approved", "rejected"]
AuthorType = Literal["admin", "trust_user"]

class SimpleQuestionRow(BaseModel):
    Question_ID: str = ""
    Category: str = ""
    Question_Text: str = ""
    Answer_Type: str = ""
    Answer_Options: Optional[str] = ""
    Characteristic: Optional[str] = ""

class QuestionnaireCreate(BaseModel):
    name: str = ""
    questions: List[SimpleQuestionRow] = []

class QuestionnaireCreated(BaseModel):
    admin_link_id: str
    question_count: int
    warnings: List[str] = []

class InstanceCreate(BaseModel):
    trust_name: str = ""

class InstanceCreated(BaseModel):
    trust_link_id: str
    trust_name: str
    question_count: int

class SuggestionCreate(BaseModel):
    instance_question_id: int
    submitter_name: str = ""
    submitter_email: Optional[str] = None
    suggestion_text: Optional[str] = None
    reason: str = ""
    component_changes: Optional[SuggestionDiff] = None

class SuggestionUpdate(BaseModel):
    status: Optional[SuggestionStatus] = None
    internal_comment: Optional[str] = None
    response_message: Optional[str] = None

class CommentCreate(BaseModel):
    author_type: AuthorType
    author_name: str = ""
    author_email: Optional[str] = None
    message: str = ""

class OptionOut(BaseModel):
    value: str
    characteristic: Optional[str] = None

class InstanceQuestionOut(BaseModel):
    id: int
    question_id: str
    section: str
    page: Optional[str] = None
    item_type: str
    question_text: str
    options: List[OptionOut] = []
    characteristic: Optional[str] = None
    required: bool = False
    has_helper: bool = False
    helper_type: Optional[str] = None
    helper_name: Optional[str] = None
    helper_value: Optional[str] = None
    enable_when: Optional[str] = None
    enable_when_parsed: Optional[EnableWhenExpression] = None
    enable_when_translated: Optional[TranslatedEnableWhen] = None
    suggestion_count: int = 0

class InstanceDetail(BaseModel):
    id: int
    trust_name: str
    questionnaire_name: str
    questions: List[InstanceQuestionOut]
