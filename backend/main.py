import io, json, logging, re
from typing import Optional
from fastapi import FastAPI, Depends, HTTPException, UploadFile, File, Form, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

import pandas as pd

import config
from db import Base, engine, get_db
from logging_setup import configure_logging
from models import Questionnaire, TrustInstance, StoredQuestion, Suggestion, SuggestionComment
from schemas import *
from security import verify_admin, generate_link_id
from questions import Question, QuestionOption
from characteristics import build_characteristic_map
from csv_validation import CsvValidationError, validate_master_request, validate_rows, validate_simple_rows
from enable_when import parse_enable_when, translate_enable_when
from suggestion_diff import normalize_diff, prune_option_refs, summarize_diff, validate_changes

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Questionnaire Review API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ------------------------
# Helpers
# ------------------------
def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None

def _question_to_row(q: Question, order_index: int) -> StoredQuestion:
    """Build an unsaved ORM row from an assembled question."""
    return StoredQuestion(
        order_index=order_index,
        question_id=q.id,
        section=q.section,
        page=q.page or None,
        item_type=q.item_type,
        question_text=q.question_text,
        options=json.dumps([o.model_dump() for o in q.options]) if q.options else None,
        characteristic=q.characteristic,
        required=q.required,
        enable_when=q.enable_when,
        has_helper=q.has_helper,
        helper_type=q.helper_type,
        helper_name=q.helper_name,
        helper_value=q.helper_value,
    )

def _row_to_question(row: StoredQuestion) -> Question:
    """Rebuild the domain question from a stored row.

    Unreadable option JSON degrades to an option-less question.
    """
    try:
        raw_options = json.loads(row.options) if row.options else []
    except ValueError:
        logger.warning("question %s has unreadable options payload", row.id)
        raw_options = []
    return Question(
        id=row.question_id,
        section=row.section or "",
        page=row.page or "",
        item_type=row.item_type or "",
        question_text=row.question_text or "",
        options=[QuestionOption(**o) for o in raw_options if isinstance(o, dict) and o.get("value")],
        characteristic=row.characteristic,
        required=bool(row.required),
        enable_when=row.enable_when,
        has_helper=bool(row.has_helper),
        helper_type=row.helper_type,
        helper_name=row.helper_name,
        helper_value=row.helper_value,
    )

def _copy_question(row: StoredQuestion, instance_id: int) -> StoredQuestion:
    return StoredQuestion(
        instance_id=instance_id,
        order_index=row.order_index,
        question_id=row.question_id,
        section=row.section,
        page=row.page,
        item_type=row.item_type,
        question_text=row.question_text,
        options=row.options,
        characteristic=row.characteristic,
        required=row.required,
        enable_when=row.enable_when,
        has_helper=row.has_helper,
        helper_type=row.helper_type,
        helper_name=row.helper_name,
        helper_value=row.helper_value,
    )

def _get_questionnaire_or_404(admin_link_id: str, db: Session) -> Questionnaire:
    q = db.execute(
        select(Questionnaire).where(Questionnaire.admin_link_id == admin_link_id)
    ).scalar_one_or_none()
    if not q:
        raise HTTPException(404, "Master questionnaire not found")
    return q

def _get_instance_or_404(trust_link_id: str, db: Session) -> TrustInstance:
    inst = db.execute(
        select(TrustInstance).where(TrustInstance.trust_link_id == trust_link_id)
    ).scalar_one_or_none()
    if not inst:
        raise HTTPException(404, "Questionnaire not found")
    return inst

def _create_questionnaire(name: str, questions: list[Question], db: Session) -> Questionnaire:
    """Insert a master questionnaire and its questions in one transaction.

    Args:
        name (str): Display name (already validated).
        questions (list[Question]): Assembled questions in upload order.
        db (Session): DB session.

    Returns:
        Questionnaire: The committed master row.

    Raises:
        HTTPException: 500 if the write fails (nothing is left behind).
    """
    for _ in range(5):
        master = Questionnaire(name=name.strip(), admin_link_id=generate_link_id())
        db.add(master)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            continue
        try:
            for i, q in enumerate(questions):
                row = _question_to_row(q, i)
                row.questionnaire_id = master.id
                db.add(row)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("failed to save questions for questionnaire %r", name)
            raise HTTPException(500, "Failed to save questions")
        logger.info("created questionnaire %s with %d questions", master.id, len(questions))
        return master
    raise HTTPException(500, "Failed to generate a unique link id")

def _suggestion_out(s: Suggestion, comment_count: int = 0) -> dict:
    q = s.question
    changes = None
    if s.component_changes:
        try:
            changes = json.loads(s.component_changes)
        except ValueError:
            logger.warning("suggestion %s has unreadable component_changes", s.id)
    return {
        "id": s.id,
        "instance_question_id": s.question_id,
        "question_id": q.question_id if q else None,
        "question_text": q.question_text if q else None,
        "trust_name": q.instance.trust_name if q and q.instance else None,
        "submitter_name": s.submitter_name,
        "submitter_email": s.submitter_email,
        "suggestion_text": s.suggestion_text,
        "reason": s.reason,
        "status": s.status,
        "internal_comment": s.internal_comment,
        "response_message": s.response_message,
        "component_changes": changes,
        "comment_count": comment_count,
        "created_at": _iso(s.created_at),
    }

def _comment_counts(suggestion_ids: list[int], db: Session) -> dict[int, int]:
    if not suggestion_ids:
        return {}
    rows = db.execute(
        select(SuggestionComment.suggestion_id, func.count())
        .where(SuggestionComment.suggestion_id.in_(suggestion_ids))
        .group_by(SuggestionComment.suggestion_id)
    ).all()
    return {sid: n for sid, n in rows}

def _read_csv_upload(file: UploadFile) -> tuple[list[dict], list[str]]:
    """Read an uploaded CSV into string-valued row dicts and its header.

    Raises:
        HTTPException: 400 if the file is not a readable CSV.
    """
    if not (file.filename or "").lower().endswith(".csv"):
        raise HTTPException(400, "Please upload a .csv file")
    content = file.file.read()
    try:
        df = pd.read_csv(io.BytesIO(content), dtype=str, keep_default_na=False, skip_blank_lines=True)
    except pd.errors.EmptyDataError:
        raise HTTPException(400, "CSV file contains no data rows")
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise HTTPException(400, f"Failed to parse CSV: {e}")
    df.columns = [str(c).strip() for c in df.columns]
    return df.to_dict("records"), list(df.columns)


@app.get("/health")
def health():
    """Basic readiness probe.

    Returns:
        dict: {"ok": True}
    """
    return {"ok": True}

# ------------------------
# Admin: create master questionnaire
# ------------------------
@app.post("/admin/questionnaires", response_model=QuestionnaireCreated, dependencies=[Depends(verify_admin)])
def create_questionnaire(payload: QuestionnaireCreate, db: Session = Depends(get_db)):
    """Create a master questionnaire from simple-shape rows.

    Checks run in order: name, non-empty list, size cap, then per-row rules.

    Args:
        payload (QuestionnaireCreate): {name, questions[]}.
        db (Session): DB session.

    Returns:
        QuestionnaireCreated: {admin_link_id, question_count, warnings}

    Raises:
        HTTPException: 400 on the first validation error; 500 if the write fails.
    """
    rows = [q.model_dump() for q in payload.questions]
    try:
        validate_master_request(payload.name, rows, config.MAX_MASTER_QUESTIONS)
        result = validate_simple_rows(rows, config.MAX_MASTER_QUESTIONS)
    except CsvValidationError as e:
        raise HTTPException(400, str(e))

    master = _create_questionnaire(payload.name, result.questions, db)
    return {"admin_link_id": master.admin_link_id, "question_count": len(result.questions), "warnings": result.warnings}

@app.post("/admin/questionnaires/upload", response_model=QuestionnaireCreated, dependencies=[Depends(verify_admin)])
def upload_questionnaire(name: str = Form(""), file: UploadFile = File(...), db: Session = Depends(get_db)):
    """Create a master questionnaire from a MyPreOp CSV (one row per option).

    Args:
        name (str): Questionnaire name (form field).
        file (UploadFile): CSV with the 13 MyPreOp columns.
        db (Session): DB session.

    Returns:
        QuestionnaireCreated: {admin_link_id, question_count, warnings}

    Raises:
        HTTPException: 400 on parse/validation errors; 500 if the write fails.
    """
    if not name.strip():
        raise HTTPException(400, "Questionnaire name is required")
    rows, columns = _read_csv_upload(file)
    try:
        result = validate_rows(rows, columns, config.MAX_UPLOAD_QUESTIONS)
    except CsvValidationError as e:
        raise HTTPException(400, str(e))

    master = _create_questionnaire(name, result.questions, db)
    return {"admin_link_id": master.admin_link_id, "question_count": len(result.questions), "warnings": result.warnings}

@app.get("/admin/questionnaires", dependencies=[Depends(verify_admin)])
def list_questionnaires(db: Session = Depends(get_db)):
    """List master questionnaires with question and instance counts.

    Returns:
        list[dict]: [{id, name, admin_link_id, created_at, question_count, instance_count}]
    """
    rows = db.execute(select(Questionnaire).order_by(Questionnaire.created_at.desc(), Questionnaire.id.desc())).scalars().all()
    return [{
        "id": m.id,
        "name": m.name,
        "admin_link_id": m.admin_link_id,
        "created_at": _iso(m.created_at),
        "question_count": len(m.questions),
        "instance_count": len(m.instances),
    } for m in rows]

@app.get("/admin/questionnaires/{admin_link_id}", dependencies=[Depends(verify_admin)])
def questionnaire_detail(admin_link_id: str, db: Session = Depends(get_db)):
    """Get a master questionnaire with its trust instances.

    Raises:
        HTTPException: 404 if the admin link is unknown.
    """
    m = _get_questionnaire_or_404(admin_link_id, db)
    instances = sorted(m.instances, key=lambda i: i.id, reverse=True)
    return {
        "master": {
            "id": m.id,
            "name": m.name,
            "admin_link_id": m.admin_link_id,
            "created_at": _iso(m.created_at),
            "question_count": len(m.questions),
        },
        "instances": [{
            "id": i.id,
            "trust_name": i.trust_name,
            "trust_link_id": i.trust_link_id,
            "created_at": _iso(i.created_at),
        } for i in instances],
    }

@app.delete("/admin/questionnaires/{admin_link_id}", dependencies=[Depends(verify_admin)])
def delete_questionnaire(admin_link_id: str, db: Session = Depends(get_db)):
    """Hard-delete a master questionnaire, its instances, questions and suggestions.

    Raises:
        HTTPException: 404 if the admin link is unknown.
    """
    m = _get_questionnaire_or_404(admin_link_id, db)
    db.delete(m)
    db.commit()
    logger.info("deleted questionnaire %s", m.id)
    return {"ok": True}

# ------------------------
# Admin: trust instances
# ------------------------
@app.post("/admin/questionnaires/{admin_link_id}/instances", response_model=InstanceCreated,
          dependencies=[Depends(verify_admin)])
def create_instance(admin_link_id: str, body: InstanceCreate, db: Session = Depends(get_db)):
    """Create a trust instance by copying the master's questions.

    Args:
        admin_link_id (str): Master admin link.
        body (InstanceCreate): {trust_name}
        db (Session): DB session.

    Returns:
        InstanceCreated: {trust_link_id, trust_name, question_count}

    Raises:
        HTTPException: 400 if trust name blank; 404 if master missing; 500 if the copy fails.
    """
    trust_name = (body.trust_name or "").strip()
    if not trust_name:
        raise HTTPException(400, "Trust name is required")
    m = _get_questionnaire_or_404(admin_link_id, db)
    masters = list(m.questions)

    inst = TrustInstance(questionnaire_id=m.id, trust_name=trust_name, trust_link_id=generate_link_id())
    db.add(inst)
    try:
        db.flush()
        for row in masters:
            db.add(_copy_question(row, inst.id))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("failed to copy questions into instance for %r", trust_name)
        raise HTTPException(500, "Failed to copy questions to instance")
    logger.info("created instance %s (%s) from questionnaire %s", inst.id, trust_name, m.id)
    return {"trust_link_id": inst.trust_link_id, "trust_name": trust_name, "question_count": len(masters)}

# ------------------------
# Admin: suggestions review
# ------------------------
def _master_suggestions_query(master_id: int):
    return (
        select(Suggestion)
        .join(StoredQuestion, Suggestion.question_id == StoredQuestion.id)
        .join(TrustInstance, StoredQuestion.instance_id == TrustInstance.id)
        .where(TrustInstance.questionnaire_id == master_id)
        .order_by(Suggestion.created_at.desc(), Suggestion.id.desc())
    )

@app.get("/admin/questionnaires/{admin_link_id}/suggestions", dependencies=[Depends(verify_admin)])
def master_suggestions(admin_link_id: str, status: Optional[str] = None, db: Session = Depends(get_db)):
    """All suggestions across a master's instances, with per-instance status counts.

    Args:
        admin_link_id (str): Master admin link.
        status (str|None): Optional filter (pending|approved|rejected).
        db (Session): DB session.

    Returns:
        dict: {"suggestions": [...], "instances": [{trust_name, trust_link_id, counts}]}
    """
    m = _get_questionnaire_or_404(admin_link_id, db)
    rows = db.execute(_master_suggestions_query(m.id)).scalars().all()

    counts = {i.id: {"pending": 0, "approved": 0, "rejected": 0} for i in m.instances}
    for s in rows:
        bucket = counts.get(s.question.instance_id)
        if bucket is not None and s.status in bucket:
            bucket[s.status] += 1

    if status:
        rows = [s for s in rows if s.status == status]
    comment_counts = _comment_counts([s.id for s in rows], db)
    return {
        "suggestions": [_suggestion_out(s, comment_counts.get(s.id, 0)) for s in rows],
        "instances": [{
            "trust_name": i.trust_name,
            "trust_link_id": i.trust_link_id,
            "counts": counts[i.id],
        } for i in m.instances],
    }

@app.get("/admin/questionnaires/{admin_link_id}/suggestions/export.csv", dependencies=[Depends(verify_admin)])
def export_suggestions_csv(admin_link_id: str, db: Session = Depends(get_db)):
    """Export a master's suggestions as CSV (newest first).

    Returns:
        Response: text/csv attachment `questionnaire_<id>_suggestions.csv`.
    """
    m = _get_questionnaire_or_404(admin_link_id, db)
    q = (
        select(Suggestion.id.label("suggestion_id"), TrustInstance.trust_name,
               StoredQuestion.question_id, StoredQuestion.question_text,
               Suggestion.submitter_name, Suggestion.submitter_email, Suggestion.status,
               Suggestion.suggestion_text, Suggestion.reason, Suggestion.response_message,
               Suggestion.created_at)
        .join(StoredQuestion, Suggestion.question_id == StoredQuestion.id)
        .join(TrustInstance, StoredQuestion.instance_id == TrustInstance.id)
        .where(TrustInstance.questionnaire_id == m.id)
        .order_by(Suggestion.created_at.desc(), Suggestion.id.desc())
    )
    df = pd.read_sql(q, db.bind)
    csv_bytes = df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv",
                    headers={"Content-Disposition": f"attachment; filename=questionnaire_{m.id}_suggestions.csv"})

@app.put("/admin/suggestions/{suggestion_id}", dependencies=[Depends(verify_admin)])
def update_suggestion(suggestion_id: int, body: SuggestionUpdate, db: Session = Depends(get_db)):
    """Approve/reject a suggestion and/or set its internal comment and response message.

    Only fields present in the body are changed; blank strings clear them.

    Raises:
        HTTPException: 404 if the suggestion is missing.
    """
    s = db.get(Suggestion, suggestion_id)
    if not s:
        raise HTTPException(404, "Suggestion not found")
    fields = body.model_fields_set
    if "status" in fields and body.status is not None:
        s.status = body.status
    if "internal_comment" in fields:
        s.internal_comment = (body.internal_comment or "").strip() or None
    if "response_message" in fields:
        s.response_message = (body.response_message or "").strip() or None
    db.commit()
    logger.info("suggestion %s updated (status=%s)", s.id, s.status)
    return {"ok": True, "status": s.status}

# ------------------------
# Trust: review instance
# ------------------------
@app.get("/instances/{trust_link_id}", response_model=InstanceDetail)
def instance_detail(trust_link_id: str, db: Session = Depends(get_db)):
    """Load an instance for review, with EnableWhen conditions explained.

    Each question's EnableWhen is parsed and translated against the
    characteristics defined by this instance's own questions.

    Raises:
        HTTPException: 404 if the trust link is unknown.
    """
    inst = _get_instance_or_404(trust_link_id, db)
    rows = list(inst.questions)
    domain = [_row_to_question(r) for r in rows]
    char_map = build_characteristic_map(domain)

    out_qs = []
    for row, q in zip(rows, domain):
        parsed = parse_enable_when(q.enable_when)
        out_qs.append({
            "id": row.id,
            "question_id": q.id,
            "section": q.section,
            "page": q.page or None,
            "item_type": q.item_type,
            "question_text": q.question_text,
            "options": [o.model_dump() for o in q.options],
            "characteristic": q.characteristic,
            "required": q.required,
            "has_helper": q.has_helper,
            "helper_type": q.helper_type,
            "helper_name": q.helper_name,
            "helper_value": q.helper_value,
            "enable_when": q.enable_when,
            "enable_when_parsed": parsed,
            "enable_when_translated": translate_enable_when(parsed, char_map) if parsed else None,
            "suggestion_count": len(row.suggestions),
        })
    return {
        "id": inst.id,
        "trust_name": inst.trust_name,
        "questionnaire_name": inst.questionnaire.name,
        "questions": out_qs,
    }

@app.get("/instances/{trust_link_id}/suggestions")
def instance_suggestions(trust_link_id: str, db: Session = Depends(get_db)):
    """List this instance's suggestions with comment counts, newest first."""
    inst = _get_instance_or_404(trust_link_id, db)
    rows = db.execute(
        select(Suggestion)
        .join(StoredQuestion, Suggestion.question_id == StoredQuestion.id)
        .where(StoredQuestion.instance_id == inst.id)
        .order_by(Suggestion.created_at.desc(), Suggestion.id.desc())
    ).scalars().all()
    comment_counts = _comment_counts([s.id for s in rows], db)
    return {
        "trust_name": inst.trust_name,
        "suggestions": [_suggestion_out(s, comment_counts.get(s.id, 0)) for s in rows],
        "total_count": len(rows),
    }

@app.post("/instances/{trust_link_id}/suggestions")
def create_suggestion(trust_link_id: str, body: SuggestionCreate, db: Session = Depends(get_db)):
    """Submit a suggestion for one instance question.

    A structured diff is normalized and validated against the question; when
    no suggestion text is given, the diff summary is stored instead.

    Args:
        trust_link_id (str): Trust share link.
        body (SuggestionCreate): Submitter, reason, optional text and component_changes.
        db (Session): DB session.

    Returns:
        dict: {"id", "status", "suggestion_text"}

    Raises:
        HTTPException: 400 on validation errors (diff errors as {"errors": {facet: [...]}});
            404 if instance or question is not found.
    """
    inst = _get_instance_or_404(trust_link_id, db)

    name = (body.submitter_name or "").strip()
    if not name:
        raise HTTPException(400, "Name is required")
    reason = (body.reason or "").strip()
    if not reason:
        raise HTTPException(400, "Reason is required")
    if len(reason) > config.MAX_REASON_LENGTH:
        raise HTTPException(400, f"Reason exceeds maximum length of {config.MAX_REASON_LENGTH} characters")
    email = (body.submitter_email or "").strip() or None
    if email and not _EMAIL_RE.match(email):
        raise HTTPException(400, "Invalid email format")

    row = db.get(StoredQuestion, body.instance_question_id)
    if not row or row.instance_id != inst.id:
        raise HTTPException(404, "Question not found")

    question = _row_to_question(row)
    diff = normalize_diff(body.component_changes) if body.component_changes else None
    if diff is not None:
        diff = prune_option_refs(diff, question)
    if diff is not None and not diff.has_changes():
        diff = None
    if diff is not None:
        errors = validate_changes(diff, question)
        if errors:
            raise HTTPException(400, {"errors": errors})

    text = (body.suggestion_text or "").strip() or (summarize_diff(diff) if diff else "")
    if not text:
        raise HTTPException(400, "Suggestion is required")
    if len(text) > config.MAX_SUGGESTION_LENGTH:
        raise HTTPException(400, f"Suggestion exceeds maximum length of {config.MAX_SUGGESTION_LENGTH} characters")

    s = Suggestion(
        question_id=row.id,
        submitter_name=name,
        submitter_email=email,
        suggestion_text=text,
        reason=reason,
        status="pending",
        component_changes=json.dumps(diff.to_payload()) if diff else None,
    )
    db.add(s)
    db.commit()
    logger.info("suggestion %s submitted for question %s", s.id, row.question_id)
    return {"id": s.id, "status": s.status, "suggestion_text": s.suggestion_text}

# ------------------------
# Trust/admin: discussion thread
# ------------------------
def _instance_suggestion_or_error(trust_link_id: str, suggestion_id: int, db: Session) -> Suggestion:
    inst = _get_instance_or_404(trust_link_id, db)
    s = db.get(Suggestion, suggestion_id)
    if not s:
        raise HTTPException(404, "Suggestion not found")
    if s.question.instance_id != inst.id:
        raise HTTPException(403, "Suggestion does not belong to this questionnaire")
    return s

@app.get("/instances/{trust_link_id}/suggestions/{suggestion_id}/comments")
def list_comments(trust_link_id: str, suggestion_id: int, db: Session = Depends(get_db)):
    """Comments on a suggestion, oldest first.

    Raises:
        HTTPException: 404 if instance/suggestion missing; 403 if it belongs elsewhere.
    """
    s = _instance_suggestion_or_error(trust_link_id, suggestion_id, db)
    comments = [{
        "id": c.id,
        "author_type": c.author_type,
        "author_name": c.author_name,
        "author_email": c.author_email,
        "message": c.message,
        "created_at": _iso(c.created_at),
    } for c in s.comments]
    return {"comments": comments, "total_count": len(comments)}

@app.post("/instances/{trust_link_id}/suggestions/{suggestion_id}/comments")
def add_comment(trust_link_id: str, suggestion_id: int, body: CommentCreate, db: Session = Depends(get_db)):
    """Append a comment to a suggestion's thread.

    Raises:
        HTTPException: 400 on blank/oversized fields; 404/403 as for listing.
    """
    s = _instance_suggestion_or_error(trust_link_id, suggestion_id, db)
    author = (body.author_name or "").strip()
    message = (body.message or "").strip()
    if not author:
        raise HTTPException(400, "Author name is required")
    if not message:
        raise HTTPException(400, "Message is required")
    if len(author) > config.MAX_AUTHOR_NAME_LENGTH:
        raise HTTPException(400, f"Author name exceeds maximum length of {config.MAX_AUTHOR_NAME_LENGTH} characters")
    if len(message) > config.MAX_COMMENT_LENGTH:
        raise HTTPException(400, f"Message exceeds maximum length of {config.MAX_COMMENT_LENGTH} characters")
    email = (body.author_email or "").strip() or None
    if email and not _EMAIL_RE.match(email):
        raise HTTPException(400, "Invalid email format")

    c = SuggestionComment(suggestion_id=s.id, author_type=body.author_type, author_name=author,
                          author_email=email, message=message)
    db.add(c)
    db.commit()
    return {"id": c.id, "created_at": _iso(c.created_at)}
