from __future__ import annotations
import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from .languages import SUPPORTED_LANGUAGES, default_rubric
from .models import OralSession, Rubric, Student
from .schemas import (
	RubricCriterion,
	RubricSpec,
	SessionRecord,
	SessionSummary,
	TranscriptEntry,
	transcript_from_json,
	transcript_to_json,
)


class RecordNotFound(LookupError):
	pass


def _naive_utc(value: datetime) -> datetime:
	# started_at is stored as naive UTC
	if value.tzinfo is None:
		return value
	return value.astimezone(timezone.utc).replace(tzinfo=None)


def _rubric_from_row(row: Rubric) -> RubricSpec:
	criteria = [RubricCriterion.model_validate(c) for c in json.loads(row.criteria_json or "[]")]
	return RubricSpec(name=row.name, language=row.language, criteria=criteria)


class SessionStore:
	"""SQLAlchemy-backed persistence for students, rubrics and oral sessions.

	The ORM calls are synchronous; the async methods run them in a worker
	thread so the event loop keeps serving other connections.
	"""

	def __init__(self, session_factory: sessionmaker) -> None:
		self._session_factory = session_factory

	def _db(self) -> Session:
		return self._session_factory()

	# ---- relay operations ----

	def load_session_sync(self, session_id: str) -> Optional[SessionRecord]:
		with self._db() as db:
			row = db.get(OralSession, session_id)
			if row is None:
				return None
			student = db.get(Student, row.student_id)
			rubric = db.get(Rubric, row.rubric_id)
			if student is None or rubric is None:
				logger.warning("Session {} references a missing student or rubric", session_id)
				return None
			return SessionRecord(
				session_id=row.id,
				student_id=student.id,
				student_name=student.first_name,
				language=student.target_language,
				rubric=_rubric_from_row(rubric),
				transcript=transcript_from_json(json.loads(row.raw_transcript) if row.raw_transcript else []),
			)

	async def load_session(self, session_id: str) -> Optional[SessionRecord]:
		return await asyncio.to_thread(self.load_session_sync, session_id)

	def save_transcript_sync(self, session_id: str, transcript: List[TranscriptEntry]) -> None:
		with self._db() as db:
			row = db.get(OralSession, session_id)
			if row is None:
				raise RecordNotFound(f"Session {session_id} not found")
			row.raw_transcript = json.dumps(transcript_to_json(transcript), ensure_ascii=False)
			db.commit()

	async def save_transcript(self, session_id: str, transcript: List[TranscriptEntry]) -> None:
		await asyncio.to_thread(self.save_transcript_sync, session_id, list(transcript))

	# ---- session start / scoring ----

	def create_student_sync(self, first_name: str, target_language: str) -> str:
		with self._db() as db:
			row = Student(first_name=first_name, target_language=target_language)
			db.add(row)
			db.commit()
			return row.id

	async def create_student(self, first_name: str, target_language: str) -> str:
		return await asyncio.to_thread(self.create_student_sync, first_name, target_language)

	def default_rubric_id_sync(self, language: str) -> Optional[str]:
		with self._db() as db:
			row = (
				db.query(Rubric)
				.filter(Rubric.language == language)
				.order_by(Rubric.created_at.desc())
				.first()
			)
			return row.id if row else None

	async def default_rubric_id(self, language: str) -> Optional[str]:
		return await asyncio.to_thread(self.default_rubric_id_sync, language)

	def create_session_sync(self, student_id: str, rubric_id: str) -> str:
		with self._db() as db:
			if db.get(Student, student_id) is None:
				raise RecordNotFound(f"Student {student_id} not found")
			if db.get(Rubric, rubric_id) is None:
				raise RecordNotFound(f"Rubric {rubric_id} not found")
			row = OralSession(student_id=student_id, rubric_id=rubric_id, raw_transcript="[]")
			db.add(row)
			db.commit()
			return row.id

	async def create_session(self, student_id: str, rubric_id: str) -> str:
		return await asyncio.to_thread(self.create_session_sync, student_id, rubric_id)

	def save_scores_sync(self, session_id: str, overall_score: float, breakdown: Dict[str, Any]) -> datetime:
		with self._db() as db:
			row = db.get(OralSession, session_id)
			if row is None:
				raise RecordNotFound(f"Session {session_id} not found")
			row.overall_score = overall_score
			row.score_breakdown = json.dumps(breakdown, ensure_ascii=False)
			row.completed_at = datetime.utcnow()
			db.commit()
			return row.completed_at

	async def save_scores(self, session_id: str, overall_score: float, breakdown: Dict[str, Any]) -> datetime:
		return await asyncio.to_thread(self.save_scores_sync, session_id, overall_score, breakdown)

	# ---- teacher review ----

	def list_sessions_sync(
		self,
		language: Optional[str] = None,
		date_from: Optional[datetime] = None,
		date_to: Optional[datetime] = None,
		student_name: Optional[str] = None,
	) -> List[SessionSummary]:
		"""Sessions newest first, joined with student and rubric.

		`language` matches the student's target language ("all" or None
		disables it); `student_name` is a case-insensitive substring match;
		the date bounds are inclusive on started_at.
		"""
		with self._db() as db:
			query = (
				db.query(OralSession, Student, Rubric)
				.join(Student, OralSession.student_id == Student.id)
				.outerjoin(Rubric, OralSession.rubric_id == Rubric.id)
			)
			if language and language != "all":
				query = query.filter(Student.target_language == language)
			if date_from is not None:
				query = query.filter(OralSession.started_at >= _naive_utc(date_from))
			if date_to is not None:
				query = query.filter(OralSession.started_at <= _naive_utc(date_to))
			if student_name:
				query = query.filter(Student.first_name.ilike(f"%{student_name}%"))
			rows = query.order_by(OralSession.started_at.desc()).all()
			return [
				SessionSummary(
					session_id=session.id,
					student_id=student.id,
					student_name=student.first_name,
					language=student.target_language,
					rubric_name=rubric.name if rubric is not None else None,
					started_at=session.started_at,
					completed_at=session.completed_at,
					overall_score=session.overall_score,
					score_breakdown=json.loads(session.score_breakdown) if session.score_breakdown else None,
					transcript=transcript_from_json(json.loads(session.raw_transcript) if session.raw_transcript else []),
				)
				for session, student, rubric in rows
			]

	async def list_sessions(
		self,
		language: Optional[str] = None,
		date_from: Optional[datetime] = None,
		date_to: Optional[datetime] = None,
		student_name: Optional[str] = None,
	) -> List[SessionSummary]:
		return await asyncio.to_thread(self.list_sessions_sync, language, date_from, date_to, student_name)

	def ensure_default_rubrics(self) -> int:
		"""Seed the built-in rubric for every supported language lacking one."""
		created = 0
		with self._db() as db:
			for code in SUPPORTED_LANGUAGES:
				exists = db.query(Rubric).filter(Rubric.language == code).first()
				if exists is not None:
					continue
				spec = default_rubric(code)
				db.add(
					Rubric(
						name=spec.name,
						language=code,
						criteria_json=json.dumps([c.model_dump() for c in spec.criteria]),
					)
				)
				created += 1
			db.commit()
		if created:
			logger.info("Seeded {} default rubric(s)", created)
		return created
