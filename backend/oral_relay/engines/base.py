from __future__ import annotations
from typing import Any, Dict, List, Optional, Protocol

from ..schemas import RubricSpec, SessionRecord, TranscriptEntry


class Transcriber(Protocol):
	async def transcribe(self, audio: bytes, language: str) -> str: ...


class QuestionGenerator(Protocol):
	async def generate(
		self,
		transcript: List[TranscriptEntry],
		rubric: RubricSpec,
		language: str,
		context: Optional[Dict[str, Any]] = None,
	) -> str: ...


class SpeechSynthesizer(Protocol):
	async def synthesize(self, text: str, language: str) -> bytes: ...


class TranscriptStore(Protocol):
	async def load_session(self, session_id: str) -> Optional[SessionRecord]: ...

	async def save_transcript(self, session_id: str, transcript: List[TranscriptEntry]) -> None: ...
