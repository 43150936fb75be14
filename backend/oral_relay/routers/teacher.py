from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel

from ..dependencies import get_services
from ..schemas import SessionSummary
from ..services import AppServices

router = APIRouter(prefix="/teacher", tags=["teacher"])


class SessionListResponse(BaseModel):
	sessions: List[SessionSummary]


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
	language: Optional[str] = Query(None),
	date_from: Optional[datetime] = Query(None, alias="dateFrom"),
	date_to: Optional[datetime] = Query(None, alias="dateTo"),
	student_name: Optional[str] = Query(None, alias="studentName"),
	services: AppServices = Depends(get_services),
):
	store = services.store
	if store is None:
		raise HTTPException(status_code=400, detail="Session review requires a configured database")
	try:
		sessions = await store.list_sessions(language, date_from, date_to, (student_name or "").strip() or None)
	except Exception as e:
		logger.error("Failed to fetch sessions: {}", e)
		raise HTTPException(status_code=500, detail="Failed to fetch sessions")
	return SessionListResponse(sessions=sessions)
