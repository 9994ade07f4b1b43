from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from db import Base

class Questionnaire(Base):
    """Master questionnaire uploaded by an administrator."""
    __tablename__ = "questionnaires"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    admin_link_id = Column(String(64), unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    questions = relationship("StoredQuestion", back_populates="questionnaire", cascade="all, delete-orphan",
                             order_by="StoredQuestion.order_index")
    instances = relationship("TrustInstance", back_populates="questionnaire", cascade="all, delete-orphan")

class TrustInstance(Base):
    """A trust's review copy of a master questionnaire."""
    __tablename__ = "trust_instances"
    id = Column(Integer, primary_key=True, index=True)
    questionnaire_id = Column(Integer, ForeignKey("questionnaires.id", ondelete="CASCADE"), index=True, nullable=False)
    trust_name = Column(String(255), nullable=False)
    trust_link_id = Column(String(64), unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    questionnaire = relationship("Questionnaire", back_populates="instances")
    questions = relationship("StoredQuestion", back_populates="instance", cascade="all, delete-orphan",
                             order_by="StoredQuestion.order_index")

class StoredQuestion(Base):
    """Question row owned by either a master questionnaire or a trust instance."""
    __tablename__ = "questions"
    id = Column(Integer, primary_key=True, index=True)
    questionnaire_id = Column(Integer, ForeignKey("questionnaires.id", ondelete="CASCADE"), index=True, nullable=True)
    instance_id = Column(Integer, ForeignKey("trust_instances.id", ondelete="CASCADE"), index=True, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    question_id = Column(String(100), nullable=False)
    section = Column(String(255), nullable=False)
    page = Column(String(255), nullable=True)
    item_type = Column(String(50), nullable=False)
    question_text = Column(Text, nullable=False, default="")
    options = Column(Text, nullable=True)  # JSON list of {value, characteristic}
    characteristic = Column(String(255), nullable=True)
    required = Column(Boolean, default=False)
    enable_when = Column(Text, nullable=True)
    has_helper = Column(Boolean, default=False)
    helper_type = Column(String(50), nullable=True)
    helper_name = Column(String(255), nullable=True)
    helper_value = Column(Text, nullable=True)
    questionnaire = relationship("Questionnaire", back_populates="questions")
    instance = relationship("TrustInstance", back_populates="questions")
    suggestions = relationship("Suggestion", back_populates="question", cascade="all, delete-orphan")

class Suggestion(Base):
    __tablename__ = "suggestions"
    id = Column(Integer, primary_key=True, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), index=True, nullable=False)
    submitter_name = Column(String(100), nullable=False)
    submitter_email = Column(String(255), nullable=True)
    suggestion_text = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    internal_comment = Column(Text, nullable=True)
    response_message = Column(Text, nullable=True)
    component_changes = Column(Text, nullable=True)  # JSON SuggestionDiff payload
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    question = relationship("StoredQuestion", back_populates="suggestions")
    comments = relationship("SuggestionComment", back_populates="suggestion", cascade="all, delete-orphan",
                            order_by="SuggestionComment.id")

class SuggestionComment(Base):
    __tablename__ = "suggestion_comments"
    id = Column(Integer, primary_key=True, index=True)
    suggestion_id = Column(Integer, ForeignKey("suggestions.id", ondelete="CASCADE"), index=True, nullable=False)
    author_type = Column(String(20), nullable=False)
    author_name = Column(String(100), nullable=False)
    author_email = Column(String(255), nullable=True)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    suggestion = relationship("Suggestion", back_populates="comments")
