from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


Speaker = Literal["student", "ai"]


class RubricCriterion(BaseModel):
	name: str
	weight: float = Field(ge=0, le=1)
	description: str = ""


class RubricSpec(BaseModel):
	"""Named, weighted scoring criteria.

	Weights are expected to sum to 1.0 but nothing here enforces it; scoring
	normalises by the actual total instead.
	"""
	name: str = "Rubric"
	language: Optional[str] = None
	criteria: List[RubricCriterion] = Field(default_factory=list)


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class TranscriptEntry(BaseModel):
	speaker: Speaker
	text: str
	timestamp: datetime = Field(default_factory=_utcnow)


def transcript_to_json(transcript: List[TranscriptEntry]) -> List[Dict[str, Any]]:
	return [entry.model_dump(mode="json") for entry in transcript]


def transcript_from_json(raw: Any) -> List[TranscriptEntry]:
	if not raw:
		return []
	return [TranscriptEntry.model_validate(item) for item in raw]


class SessionRecord(BaseModel):
	"""Persisted interview session as seen by the relay."""
	session_id: str
	student_id: Optional[str] = None
	student_name: Optional[str] = None
	language: str
	rubric: RubricSpec
	transcript: List[TranscriptEntry] = Field(default_factory=list)


class SessionSummary(BaseModel):
	"""One row of the teacher's session review list."""
	session_id: str
	student_id: str
	student_name: str
	language: str
	rubric_name: Optional[str] = None
	started_at: datetime
	completed_at: Optional[datetime] = None
	overall_score: Optional[float] = None
	score_breakdown: Optional[Dict[str, Any]] = None
	transcript: List[TranscriptEntry] = Field(default_factory=list)
