from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Float, Text, ForeignKey
from .db import Base


def _new_id() -> str:
	return uuid.uuid4().hex


class Student(Base):
	__tablename__ = "students"
	id = Column(String(64), primary_key=True, default=_new_id)
	first_name = Column(String(128), nullable=False)
	target_language = Column(String(8), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Rubric(Base):
	__tablename__ = "rubrics"
	id = Column(String(64), primary_key=True, default=_new_id)
	name = Column(String(256), nullable=False)
	language = Column(String(8), nullable=False, index=True)
	criteria_json = Column(Text, nullable=False)  # JSON list of criteria
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class OralSession(Base):
	__tablename__ = "oral_sessions"
	id = Column(String(64), primary_key=True, default=_new_id)
	student_id = Column(String(64), ForeignKey("students.id"), nullable=False)
	rubric_id = Column(String(64), ForeignKey("rubrics.id"), nullable=False)
	started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	completed_at = Column(DateTime, nullable=True)
	overall_score = Column(Float, nullable=True)
	raw_transcript = Column(Text, nullable=True)  # JSON list of transcript entries
	score_breakdown = Column(Text, nullable=True)  # JSON object keyed by criterion
