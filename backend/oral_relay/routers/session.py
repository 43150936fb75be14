"""
Interview session endpoints.

- POST /session/start: open a session (persisted, or demo when no database
  is configured) and return the opening question for the language.
- POST /session/{id}/score: score the persisted transcript against the
  session's rubric and record the result.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel

from ..dependencies import get_services
from ..languages import SUPPORTED_LANGUAGES, default_rubric, initial_question, is_supported
from ..schemas import RubricSpec
from ..services import AppServices
from ..store import RecordNotFound

router = APIRouter(prefix="/session", tags=["session"])


class StartRequest(BaseModel):
	target_language: str
	student_id: Optional[str] = None
	rubric_id: Optional[str] = None
	first_name: Optional[str] = None


class StartResponse(BaseModel):
	session_id: str
	student_id: str
	language: str
	rubric: RubricSpec
	initial_question: str
	demo: bool = False
	session_data: Dict[str, Any] = {}


class ScoreResponse(BaseModel):
	session_id: str
	overall_score: float
	criteria_scores: Dict[str, Any]
	feedback: Optional[str] = None
	completed_at: datetime


@router.post("/start", response_model=StartResponse)
async def start(req: StartRequest, services: AppServices = Depends(get_services)):
	language = (req.target_language or "").strip()
	if not is_supported(language):
		raise HTTPException(
			status_code=400,
			detail=f"target_language must be one of {','.join(SUPPORTED_LANGUAGES)}",
		)

	store = services.store
	if store is None:
		stamp = int(time.time() * 1000)
		prefix = services.settings.demo_session_prefix
		session_id = f"{prefix}session-{stamp}"
		return StartResponse(
			session_id=session_id,
			student_id=f"{prefix}student-{stamp}",
			language=language,
			rubric=default_rubric(language),
			initial_question=initial_question(language),
			demo=True,
			session_data={
				"id": session_id,
				"student_name": req.first_name or "Demo User",
				"started_at": datetime.now(timezone.utc).isoformat(),
			},
		)

	student_id = req.student_id
	if not student_id:
		if not req.first_name:
			raise HTTPException(status_code=400, detail="student_id or first_name is required")
		student_id = await store.create_student(req.first_name.strip(), language)

	rubric_id = req.rubric_id or await store.default_rubric_id(language)
	if not rubric_id:
		raise HTTPException(status_code=404, detail="No rubric available for this language")

	try:
		session_id = await store.create_session(student_id, rubric_id)
	except RecordNotFound as e:
		raise HTTPException(status_code=404, detail=str(e))

	record = await store.load_session(session_id)
	if record is None:
		raise HTTPException(status_code=500, detail="Failed to retrieve session details")
	logger.info("Started session {} for student {}", session_id, student_id)
	return StartResponse(
		session_id=session_id,
		student_id=student_id,
		language=record.language,
		rubric=record.rubric,
		initial_question=initial_question(record.language),
		session_data={"id": session_id, "student_name": record.student_name},
	)


@router.post("/{session_id}/score", response_model=ScoreResponse)
async def score(session_id: str, services: AppServices = Depends(get_services)):
	store = services.store
	if store is None:
		raise HTTPException(status_code=400, detail="Scoring requires a configured database")
	record = await store.load_session(session_id)
	if record is None:
		raise HTTPException(status_code=404, detail="Session not found")
	if not record.transcript:
		raise HTTPException(status_code=400, detail="No transcript available for scoring")

	try:
		result = await services.scorer.score(record.rubric, record.transcript)
	except Exception as e:
		logger.error("Scoring failed for {}: {}", session_id, e)
		raise HTTPException(status_code=500, detail="Failed to score session")

	completed_at = await store.save_scores(session_id, result["overall_score"], result["criteria_scores"])
	return ScoreResponse(
		session_id=session_id,
		overall_score=result["overall_score"],
		criteria_scores=result["criteria_scores"],
		feedback=result.get("feedback"),
		completed_at=completed_at,
	)
