from __future__ import annotations
import asyncio
from typing import Any, Dict, List, Optional

from loguru import logger

from ..gemini_client import GeminiClient, GenerationError
from ..languages import language_name
from ..schemas import RubricSpec, TranscriptEntry
from ..settings import settings


FALLBACK_QUESTION = "Can you tell me more about that?"

SYSTEM_INSTRUCTION = (
	"You are an expert language assessment interviewer. Generate natural, appropriate "
	"follow-up questions based on student responses and assessment criteria."
)


def format_criteria(rubric: RubricSpec) -> str:
	return "\n".join(
		f"{c.name} ({c.weight * 100:.0f}% weight): {c.description}" for c in rubric.criteria
	)


def format_history(transcript: List[TranscriptEntry]) -> str:
	return "\n".join(
		f"{'Student' if entry.speaker == 'student' else 'AI'}: {entry.text}" for entry in transcript
	)


def build_question_prompt(transcript: List[TranscriptEntry], rubric: RubricSpec, language: str) -> str:
	lang = language_name(language)
	return f"""
You are an expert language interviewer conducting a 3-minute oral assessment in {lang}.

RUBRIC CRITERIA:
{format_criteria(rubric)}

CONVERSATION SO FAR:
{format_history(transcript)}

Based on the student's responses and the rubric criteria, generate the next follow-up question that will:
1. Assess the student's proficiency in the target language
2. Be appropriate for their demonstrated level
3. Help evaluate the rubric criteria
4. Keep the conversation natural and engaging
5. Be in the target language ({lang})

Respond with ONLY the question text, no additional formatting or explanation.
""".strip()


def clean_question(raw: str) -> str:
	text = (raw or "").strip()
	# Models occasionally wrap the question in quotes or a "Question:" label
	if text.lower().startswith("question:"):
		text = text[len("question:"):].strip()
	if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
		text = text[1:-1].strip()
	return text


class GeminiQuestionGenerator:
	def __init__(self, client: Optional[GeminiClient] = None, *, model: Optional[str] = None) -> None:
		self._client = client
		self._model = model or settings.gemini_model_questions or settings.gemini_model

	def _get_client(self) -> GeminiClient:
		if self._client is None:
			self._client = GeminiClient(model=self._model)
		return self._client

	async def generate(
		self,
		transcript: List[TranscriptEntry],
		rubric: RubricSpec,
		language: str,
		context: Optional[Dict[str, Any]] = None,
	) -> str:
		prompt = build_question_prompt(transcript, rubric, language)
		raw = await self._get_client().generate(
			prompt,
			system_instruction=SYSTEM_INSTRUCTION,
			temperature=0.7,
			max_output_tokens=150,
		)
		question = clean_question(raw)
		if not question:
			raise GenerationError("Model returned an empty question")
		if context:
			logger.debug("Generated question for session {}", context.get("sessionId"))
		return question

	async def aclose(self) -> None:
		if self._client is not None:
			await self._client.aclose()


async def generate_or_fallback(
	generator: Any,
	transcript: List[TranscriptEntry],
	rubric: RubricSpec,
	language: str,
	context: Optional[Dict[str, Any]] = None,
	*,
	timeout: Optional[float] = None,
) -> str:
	"""Ask the generator for a question; any failure or timeout yields FALLBACK_QUESTION."""
	try:
		question = await asyncio.wait_for(
			generator.generate(transcript, rubric, language, context),
			timeout,
		)
	except Exception as e:
		logger.warning("Question generation failed, using fallback: {}", e)
		return FALLBACK_QUESTION
	return (question or "").strip() or FALLBACK_QUESTION
