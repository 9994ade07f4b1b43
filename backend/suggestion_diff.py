# suggestion_diff.py
"""Structured suggestion diffs.

A diff has four facets (settings, content, help, logic). A facet is either
``None`` (untouched) or a model with at least one populated field; every
update collapses an emptied facet back to ``None``. Changed fields are stored
as ``{"from": original, "to": proposed}`` pairs, and a pair whose ``to``
equals its ``from`` is dropped.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Literal, Mapping, Optional, Type, TypeVar

from pydantic import AnyUrl, BaseModel, Field, TypeAdapter, ValidationError, model_validator

from questions import CHOICE_TYPES, Question

logger = logging.getLogger(__name__)

FacetName = Literal["settings", "content", "help", "logic"]
FACETS = ("settings", "content", "help", "logic")

MIN_OPTIONS_FOR_CHOICE = 2
WEB_LINK_HELPER_TYPES = frozenset({"weblink", "web-link", "web_link", "url", "link"})
CHARACTERISTIC_MAX_LENGTH = 30

_url_adapter = TypeAdapter(AnyUrl)


class _Change(BaseModel):
    class Config:
        populate_by_name = True

    @property
    def is_noop(self) -> bool:
        return (self.from_ or None) == (self.to or None)


class BoolChange(_Change):
    from_: bool = Field(alias="from")
    to: bool


class TextChange(_Change):
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None


class OptionChange(BaseModel):
    text: str
    characteristic: Optional[str] = None
    comment: Optional[str] = None

    @model_validator(mode="after")
    def _default_characteristic(self) -> "OptionChange":
        if not (self.characteristic or "").strip():
            self.characteristic = generate_characteristic(self.text)
        return self


class ModifiedOption(BaseModel):
    index: int
    from_: str = Field(alias="from")
    to: str
    from_characteristic: Optional[str] = None
    to_characteristic: Optional[str] = None
    comment: Optional[str] = None

    class Config:
        populate_by_name = True

    @property
    def is_noop(self) -> bool:
        return (
            self.from_ == self.to
            and (self.to_characteristic is None or self.to_characteristic == self.from_characteristic)
            and not self.comment
        )


class OptionsChanges(BaseModel):
    added: List[OptionChange] = []
    modified: List[ModifiedOption] = []
    removed: List[int] = []

    @property
    def is_noop(self) -> bool:
        return not (self.added or self.modified or self.removed)


class SettingsChanges(BaseModel):
    required: Optional[BoolChange] = None


class ContentChanges(BaseModel):
    question_text: Optional[TextChange] = None
    answer_type: Optional[TextChange] = None
    options: Optional[OptionsChanges] = None


class HelpChanges(BaseModel):
    has_helper: Optional[BoolChange] = None
    helper_type: Optional[TextChange] = None
    helper_name: Optional[TextChange] = None
    helper_value: Optional[TextChange] = None


class LogicChanges(BaseModel):
    description: Optional[str] = None


class SuggestionDiff(BaseModel):
    settings: Optional[SettingsChanges] = None
    content: Optional[ContentChanges] = None
    help: Optional[HelpChanges] = None
    logic: Optional[LogicChanges] = None

    def has_changes(self) -> bool:
        return any(getattr(self, f) is not None for f in FACETS)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict with untouched facets and fields left out."""
        return self.model_dump(by_alias=True, exclude_none=True)


FACET_MODELS: Dict[str, Type[BaseModel]] = {
    "settings": SettingsChanges,
    "content": ContentChanges,
    "help": HelpChanges,
    "logic": LogicChanges,
}

F = TypeVar("F", bound=BaseModel)


def _is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return bool(getattr(value, "is_noop", False))


def merge_facet(model: Type[F], current: Optional[F], patch: Optional[Mapping[str, Any]]) -> Optional[F]:
    """Shallow-merge ``patch`` onto ``current``.

    ``None`` or an empty patch clears the facet. A field set to ``None`` (or
    to a no-op change) is removed; the facet becomes ``None`` once every
    field is gone.
    """
    if not patch:
        return None
    data: Dict[str, Any] = {}
    if current is not None:
        data = {name: getattr(current, name) for name in model.model_fields}
    data.update(patch)
    merged = model(**{k: v for k, v in data.items() if v is not None})
    kept = {name: getattr(merged, name) for name in model.model_fields}
    kept = {k: v for k, v in kept.items() if not _is_empty_value(v)}
    if not kept:
        return None
    return model(**kept)


def update_settings(current: Optional[SettingsChanges], patch: Optional[Mapping[str, Any]]) -> Optional[SettingsChanges]:
    return merge_facet(SettingsChanges, current, patch)


def update_content(current: Optional[ContentChanges], patch: Optional[Mapping[str, Any]]) -> Optional[ContentChanges]:
    return merge_facet(ContentChanges, current, patch)


def update_help(current: Optional[HelpChanges], patch: Optional[Mapping[str, Any]]) -> Optional[HelpChanges]:
    return merge_facet(HelpChanges, current, patch)


def update_logic(current: Optional[LogicChanges], patch: Optional[Mapping[str, Any]]) -> Optional[LogicChanges]:
    return merge_facet(LogicChanges, current, patch)


def update_facet(diff: SuggestionDiff, facet: str, patch: Optional[Mapping[str, Any]]) -> SuggestionDiff:
    """Return a new diff with ``facet`` merged with ``patch``."""
    if facet not in FACET_MODELS:
        raise ValueError(f"Unknown facet: {facet}")
    value = merge_facet(FACET_MODELS[facet], getattr(diff, facet), patch)
    return diff.model_copy(update={facet: value})


def normalize_diff(diff: SuggestionDiff) -> SuggestionDiff:
    """Re-apply the facet invariants to a diff built elsewhere (e.g. received over HTTP)."""
    facets: Dict[str, Any] = {}
    for name, model in FACET_MODELS.items():
        current = getattr(diff, name)
        if current is not None:
            current = merge_facet(model, None, {k: getattr(current, k) for k in model.model_fields})
        facets[name] = current
    return SuggestionDiff(**facets)


# ------------------------
# Options sub-model
# ------------------------
def generate_characteristic(text: str) -> str:
    """Derive a characteristic token from option text (no uniqueness check)."""
    token = re.sub(r"[^a-z0-9]+", "_", text.strip().lower()).strip("_")
    return token[:CHARACTERISTIC_MAX_LENGTH]


def _options_of(content: Optional[ContentChanges]) -> OptionsChanges:
    if content is not None and content.options is not None:
        return content.options
    return OptionsChanges()


def add_option(content: Optional[ContentChanges], text: str, characteristic: Optional[str] = None,
               comment: Optional[str] = None) -> Optional[ContentChanges]:
    text = (text or "").strip()
    if not text:
        return content
    opts = _options_of(content)
    new = OptionChange(
        text=text,
        characteristic=(characteristic or "").strip() or generate_characteristic(text),
        comment=(comment or "").strip() or None,
    )
    return update_content(content, {"options": opts.model_copy(update={"added": [*opts.added, new]})})


def remove_added_option(content: Optional[ContentChanges], position: int) -> Optional[ContentChanges]:
    opts = _options_of(content)
    added = [o for i, o in enumerate(opts.added) if i != position]
    return update_content(content, {"options": opts.model_copy(update={"added": added})})


def modify_option(content: Optional[ContentChanges], question: Question, index: int, text: str,
                  characteristic: Optional[str] = None, comment: Optional[str] = None) -> Optional[ContentChanges]:
    """Record an edit of original option ``index``; editing back to the original drops it."""
    if not 0 <= index < len(question.options):
        return content
    original = question.options[index]
    opts = _options_of(content)
    entry = ModifiedOption(
        index=index,
        from_=original.value,
        to=(text or "").strip(),
        from_characteristic=original.characteristic,
        to_characteristic=(characteristic or "").strip() or None,
        comment=(comment or "").strip() or None,
    )
    modified = [m for m in opts.modified if m.index != index]
    if not entry.is_noop:
        modified.append(entry)
        modified.sort(key=lambda m: m.index)
    return update_content(content, {"options": opts.model_copy(update={"modified": modified})})


def toggle_option_removal(content: Optional[ContentChanges], index: int) -> Optional[ContentChanges]:
    """Mark original option ``index`` as removed, or undo an earlier removal."""
    opts = _options_of(content)
    if index in opts.removed:
        removed = [i for i in opts.removed if i != index]
    else:
        removed = sorted([*opts.removed, index])
    return update_content(content, {"options": opts.model_copy(update={"removed": removed})})


# ------------------------
# Validation
# ------------------------
def _is_valid_url(value: str) -> bool:
    try:
        _url_adapter.validate_python(value)
    except ValidationError:
        return False
    return True


def resulting_option_count(diff: SuggestionDiff, question: Question) -> int:
    opts = _options_of(diff.content)
    removed = {i for i in opts.removed if 0 <= i < len(question.options)}
    return len(question.options) + len(opts.added) - len(removed)


def prune_option_refs(diff: SuggestionDiff, question: Question) -> SuggestionDiff:
    """Drop removed/modified entries that point past the question's options."""
    if diff.content is None or diff.content.options is None:
        return diff
    opts = diff.content.options
    size = len(question.options)
    removed = [i for i in opts.removed if 0 <= i < size]
    modified = [m for m in opts.modified if 0 <= m.index < size]
    if removed == opts.removed and modified == opts.modified:
        return diff
    logger.debug("dropping option references outside 0..%d for question %s", size - 1, question.id)
    content = update_content(diff.content, {
        "options": opts.model_copy(update={"removed": removed, "modified": modified}),
    })
    return diff.model_copy(update={"content": content})


def validate_changes(diff: SuggestionDiff, question: Question) -> Dict[str, List[str]]:
    """Facet-level checks against the originating question. Never mutates ``diff``."""
    errors: Dict[str, List[str]] = {}

    content = diff.content
    if content is not None and (content.options is not None or content.answer_type is not None):
        item_type = question.item_type
        if content.answer_type is not None and content.answer_type.to:
            item_type = content.answer_type.to.lower()
        if item_type in CHOICE_TYPES:
            count = resulting_option_count(diff, question)
            if count < MIN_OPTIONS_FOR_CHOICE:
                errors.setdefault("content", []).append(
                    f"{item_type} questions require at least {MIN_OPTIONS_FOR_CHOICE} options (would have {count})"
                )

    help_ = diff.help
    if help_ is not None and help_.helper_value is not None:
        helper_type = question.helper_type
        if help_.helper_type is not None:
            helper_type = help_.helper_type.to
        value = help_.helper_value.to
        if (helper_type or "").lower() in WEB_LINK_HELPER_TYPES and value and not _is_valid_url(value):
            errors.setdefault("help", []).append("Please enter a valid URL")

    return errors


def validate_diff(diff: SuggestionDiff, question: Question, submitter_name: str, notes: str,
                  min_notes_length: int = 1, max_notes_length: int = 2000) -> Dict[str, List[str]]:
    """Everything that must hold before a diff can be submitted.

    Returns facet-keyed messages plus ``submitter`` and ``notes`` keys for the
    reviewer's own inputs; an empty dict means submittable.
    """
    errors = validate_changes(diff, question)
    if not diff.has_changes():
        errors.setdefault("notes", []).append("At least one change is required")
    if not (submitter_name or "").strip():
        errors.setdefault("submitter", []).append("Name is required")

    text = (notes or "").strip()
    if not text:
        errors.setdefault("notes", []).append("Notes are required")
    elif len(text) < min_notes_length:
        errors.setdefault("notes", []).append(f"Notes must be at least {min_notes_length} characters")
    elif len(text) > max_notes_length:
        errors.setdefault("notes", []).append(f"Notes cannot exceed {max_notes_length} characters")
    return errors


# ------------------------
# Summary / submission
# ------------------------
def _req(flag: bool) -> str:
    return "required" if flag else "optional"


def summarize_diff(diff: SuggestionDiff) -> str:
    """One clause per populated field, joined by ``"; "``."""
    parts: List[str] = []
    if diff.settings is not None and diff.settings.required is not None:
        ch = diff.settings.required
        parts.append(f"Change required status from {_req(ch.from_)} to {_req(ch.to)}")

    content = diff.content
    if content is not None:
        if content.question_text is not None:
            parts.append("Update question text")
        if content.answer_type is not None:
            parts.append(f'Change answer type from "{content.answer_type.from_ or ""}" to "{content.answer_type.to or ""}"')
        if content.options is not None:
            if content.options.added:
                parts.append(f"Add {len(content.options.added)} option(s)")
            if content.options.modified:
                parts.append(f"Modify {len(content.options.modified)} option(s)")
            if content.options.removed:
                parts.append(f"Remove {len(content.options.removed)} option(s)")

    help_ = diff.help
    if help_ is not None:
        if help_.has_helper is not None:
            parts.append(f"{'Enable' if help_.has_helper.to else 'Disable'} helper content")
        if help_.helper_type is not None:
            parts.append(f'Change helper type to "{help_.helper_type.to or ""}"')
        if help_.helper_name is not None:
            parts.append("Update helper name")
        if help_.helper_value is not None:
            parts.append("Update helper content")

    if diff.logic is not None and diff.logic.description:
        desc = diff.logic.description.strip()
        parts.append(f"Logic change: {desc[:50]}{'...' if len(desc) > 50 else ''}")

    return "; ".join(parts) if parts else "Component-level changes suggested"


class SubmissionPayload(BaseModel):
    question_id: str
    submitter_name: str
    submitter_email: Optional[str] = None
    suggestion_text: str
    reason: str
    component_changes: Optional[SuggestionDiff] = None


def build_submission(diff: SuggestionDiff, question: Question, submitter_name: str,
                     submitter_email: Optional[str], notes: str) -> SubmissionPayload:
    """Summary text for humans plus the structured diff, emitted together."""
    diff = prune_option_refs(diff, question)
    return SubmissionPayload(
        question_id=question.id,
        submitter_name=submitter_name.strip(),
        submitter_email=(submitter_email or "").strip() or None,
        suggestion_text=summarize_diff(diff),
        reason=notes.strip(),
        component_changes=diff if diff.has_changes() else None,
    )
