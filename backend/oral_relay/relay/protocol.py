from __future__ import annotations
import json
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..schemas import RubricSpec


class ProtocolError(ValueError):
	"""Inbound frame could not be decoded into a message."""


# ---- inbound ----

class JoinData(BaseModel):
	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	language: Optional[str] = None
	student_name: Optional[str] = Field(default=None, alias="studentName")
	student_id: Optional[str] = Field(default=None, alias="studentId")
	rubric: Optional[RubricSpec] = None


class InboundMessage(BaseModel):
	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	type: str
	session_id: Optional[str] = Field(default=None, alias="sessionId")
	data: Optional[Dict[str, Any]] = None


def decode_message(raw: Union[str, bytes]) -> InboundMessage:
	try:
		payload = json.loads(raw)
	except (TypeError, ValueError) as e:
		raise ProtocolError("Invalid JSON") from e
	if not isinstance(payload, dict):
		raise ProtocolError("Message must be a JSON object")
	try:
		return InboundMessage.model_validate(payload)
	except ValidationError as e:
		raise ProtocolError("Malformed message") from e


# ---- outbound ----

class OutboundEvent(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	type: str

	def to_json(self) -> str:
		return json.dumps(self.model_dump(mode="json", by_alias=True, exclude_none=True), ensure_ascii=False)


class SessionJoinedEvent(OutboundEvent):
	type: Literal["session_joined"] = "session_joined"
	session_id: str = Field(alias="sessionId")
	language: str
	rubric: RubricSpec
	data: Optional[Dict[str, Any]] = None


class TranscriptionEvent(OutboundEvent):
	type: Literal["transcription"] = "transcription"
	text: str
	speaker: Literal["student"] = "student"


class AiResponseEvent(OutboundEvent):
	type: Literal["ai_response"] = "ai_response"
	text: str
	speaker: Literal["ai"] = "ai"


class AiAudioEvent(OutboundEvent):
	type: Literal["ai_audio"] = "ai_audio"
	audio: str  # base64
	format: str = "mp3"


class ProcessingEvent(OutboundEvent):
	type: Literal["processing"] = "processing"
	message: str


class ReadyEvent(OutboundEvent):
	type: Literal["ready"] = "ready"
	message: Optional[str] = "Ready for next input"


class ErrorEvent(OutboundEvent):
	type: Literal["error"] = "error"
	message: str


class PongEvent(OutboundEvent):
	type: Literal["pong"] = "pong"
