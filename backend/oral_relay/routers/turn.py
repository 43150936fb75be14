from __future__ import annotations
import asyncio
import base64
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from ..dependencies import get_services
from ..engines.generation import generate_or_fallback
from ..engines.synthesis import AUDIO_FORMAT
from ..engines.transcription import TranscriptionError
from ..languages import DEFAULT_LANGUAGE, default_rubric
from ..schemas import RubricSpec, TranscriptEntry
from ..services import AppServices

router = APIRouter(tags=["turn"])


class TranscribeResponse(BaseModel):
	transcription: str
	success: bool = True
	audio_size: int = Field(serialization_alias="audioSize")


class GenerateResponseRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	transcript: List[TranscriptEntry]
	rubric: Optional[RubricSpec] = None
	language: str = DEFAULT_LANGUAGE
	session_context: Optional[Dict[str, Any]] = Field(default=None, alias="sessionContext")


class GenerateResponseResponse(BaseModel):
	response: str
	audio: str
	audio_format: str = Field(default=AUDIO_FORMAT, serialization_alias="audioFormat")
	success: bool = True


@router.post("/transcribe", response_model=TranscribeResponse, response_model_by_alias=True)
async def transcribe(
	audio: UploadFile = File(...),
	language: str = Form(DEFAULT_LANGUAGE),
	services: AppServices = Depends(get_services),
):
	limit = services.settings.max_upload_bytes
	data = await audio.read(limit + 1)
	if not data:
		raise HTTPException(status_code=400, detail="No audio file provided")
	if len(data) > limit:
		raise HTTPException(status_code=400, detail=f"Audio file too large (max {limit // (1024 * 1024)}MB)")

	logger.info("Transcribing upload: {} bytes, language: {}", len(data), language)
	try:
		text = await asyncio.wait_for(
			services.transcriber.transcribe(data, language),
			services.settings.http_turn_timeout_seconds,
		)
	except asyncio.TimeoutError:
		raise HTTPException(status_code=504, detail="Transcription timed out")
	except TranscriptionError as e:
		raise HTTPException(status_code=500, detail=f"Failed to transcribe audio: {e}")
	return TranscribeResponse(transcription=text, audio_size=len(data))


async def _question_and_speech(services: AppServices, req: GenerateResponseRequest) -> GenerateResponseResponse:
	rubric = req.rubric or default_rubric(req.language)
	question = await generate_or_fallback(
		services.generator,
		req.transcript,
		rubric,
		req.language,
		req.session_context,
		timeout=services.settings.engine_timeout_seconds,
	)
	speech = await services.synthesizer.synthesize(question, req.language)
	return GenerateResponseResponse(response=question, audio=base64.b64encode(speech).decode("ascii"))


@router.post("/generate-response", response_model=GenerateResponseResponse, response_model_by_alias=True)
async def generate_response(req: GenerateResponseRequest, services: AppServices = Depends(get_services)):
	logger.info("Generating response for {} messages in {}", len(req.transcript), req.language)
	try:
		return await asyncio.wait_for(
			_question_and_speech(services, req),
			services.settings.http_turn_timeout_seconds,
		)
	except asyncio.TimeoutError:
		raise HTTPException(status_code=504, detail="Response generation timed out")
	except Exception as e:
		logger.error("Response generation failed: {}", e)
		raise HTTPException(status_code=500, detail="Failed to generate response")
