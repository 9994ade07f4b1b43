# characteristics.py
"""Characteristic lookup: which question (and option) defines each token."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

from pydantic import BaseModel

from questions import Question

logger = logging.getLogger(__name__)


class CharacteristicSource(BaseModel):
    question_id: str
    question_text: str
    option_value: Optional[str] = None

    class Config:
        frozen = True


CharacteristicMap = Dict[str, CharacteristicSource]


def build_characteristic_map(questions: Iterable[Question]) -> CharacteristicMap:
    """Map characteristic token -> defining question/option.

    Option characteristics win over the question-level one; the first
    registration of a token is kept and later duplicates are ignored.
    """
    out: CharacteristicMap = {}

    def register(token: Optional[str], source: CharacteristicSource) -> None:
        token = (token or "").strip()
        if not token:
            return
        if token in out:
            logger.debug("characteristic %r already defined by %s; ignoring %s",
                         token, out[token].question_id, source.question_id)
            return
        out[token] = source

    for q in questions:
        if q.options:
            for opt in q.options:
                register(opt.characteristic, CharacteristicSource(
                    question_id=q.id, question_text=q.question_text, option_value=opt.value))
        elif q.characteristic:
            register(q.characteristic, CharacteristicSource(
                question_id=q.id, question_text=q.question_text))
    return out
