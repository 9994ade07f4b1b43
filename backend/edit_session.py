# edit_session.py
"""Reviewer edit state for one questionnaire instance.

Plain state machine driven by method calls: one selected question at a
time, one pending :class:`SuggestionDiff` for it.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import config
from questions import Question
from suggestion_diff import (
    FACETS,
    SubmissionPayload,
    SuggestionDiff,
    add_option,
    build_submission,
    modify_option,
    toggle_option_removal,
    update_facet,
    validate_diff,
)

logger = logging.getLogger(__name__)


class EditSession:
    def __init__(self, questions: Sequence[Question], *, min_notes_length: Optional[int] = None,
                 max_notes_length: Optional[int] = None):
        self._questions = {q.id: q for q in questions}
        self.min_notes_length = config.MIN_NOTES_LENGTH if min_notes_length is None else min_notes_length
        self.max_notes_length = config.MAX_NOTES_LENGTH if max_notes_length is None else max_notes_length
        self.selected_question_id: Optional[str] = None
        self.diff = SuggestionDiff()
        self.submitter_name = ""
        self.submitter_email = ""
        self.notes = ""
        self.is_dirty = False

    @property
    def selected_question(self) -> Optional[Question]:
        if self.selected_question_id is None:
            return None
        return self._questions.get(self.selected_question_id)

    def has_changes(self) -> bool:
        return self.diff.has_changes()

    def facet_has_changes(self, facet: str) -> bool:
        return getattr(self.diff, facet, None) is not None

    def select_question(self, question_id: Optional[str], *, discard: bool = False) -> bool:
        """Switch the edited question.

        Returns ``False`` and keeps the current state when there are unsaved
        changes, unless ``discard`` confirms they may be dropped.
        """
        if question_id == self.selected_question_id:
            return True
        if question_id is not None and question_id not in self._questions:
            raise KeyError(question_id)
        if self.has_changes() and self.is_dirty and not discard:
            logger.debug("switch to %s blocked by unsaved changes on %s", question_id, self.selected_question_id)
            return False
        self._clear()
        self.selected_question_id = question_id
        return True

    def update_facet(self, facet: str, patch: Optional[Mapping[str, Any]]) -> None:
        self.diff = update_facet(self.diff, facet, patch)
        self.is_dirty = True

    def _set_content(self, content) -> None:
        self.diff = self.diff.model_copy(update={"content": content})
        self.is_dirty = True

    def _require_question(self) -> Question:
        question = self.selected_question
        if question is None:
            raise RuntimeError("No question selected")
        return question

    def add_option(self, text: str, characteristic: Optional[str] = None, comment: Optional[str] = None) -> None:
        self._require_question()
        self._set_content(add_option(self.diff.content, text, characteristic, comment))

    def modify_option(self, index: int, text: str, characteristic: Optional[str] = None,
                      comment: Optional[str] = None) -> None:
        question = self._require_question()
        self._set_content(modify_option(self.diff.content, question, index, text, characteristic, comment))

    def toggle_option_removal(self, index: int) -> None:
        self._require_question()
        self._set_content(toggle_option_removal(self.diff.content, index))

    def set_submitter(self, name: str, email: Optional[str] = None) -> None:
        self.submitter_name = name
        if email is not None:
            self.submitter_email = email

    def set_notes(self, notes: str) -> None:
        self.notes = notes
        self.is_dirty = True

    def validate(self) -> Dict[str, List[str]]:
        question = self.selected_question
        if question is None:
            return {"question": ["No question selected"]}
        return validate_diff(self.diff, question, self.submitter_name, self.notes,
                             self.min_notes_length, self.max_notes_length)

    def is_valid(self) -> bool:
        return not self.validate()

    def facet_has_errors(self, facet: str) -> bool:
        return bool(self.validate().get(facet))

    def get_submission_payload(self) -> Optional[SubmissionPayload]:
        question = self.selected_question
        if question is None or not self.is_valid():
            return None
        return build_submission(self.diff, question, self.submitter_name, self.submitter_email, self.notes)

    def _clear(self) -> None:
        self.diff = SuggestionDiff()
        self.notes = ""
        self.is_dirty = False

    def clear_changes(self) -> None:
        """Drop pending changes and notes but keep the selection."""
        self._clear()

    def reset(self) -> None:
        """Back to the initial state; submitter details are kept for the next suggestion."""
        self._clear()
        self.selected_question_id = None

    def facets_with_changes(self) -> List[str]:
        return [f for f in FACETS if self.facet_has_changes(f)]
