"""
Speech-to-text for student utterances.

Audio arrives from the browser as WEBM/Opus; Google Cloud Speech-to-Text
accepts it directly, so no transcoding happens here. The language code is a
hint: recognition is pinned to the session's target language.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from google.api_core.exceptions import GoogleAPIError
from google.cloud import speech_v1p1beta1 as speech
from loguru import logger

from ..languages import speech_locale
from ..settings import settings


class TranscriptionError(RuntimeError):
	pass


def dedupe_transcript(text: str) -> str:
	"""Collapse repeated 1-3 word phrases and extra whitespace.

	Recognisers sometimes repeat a phrase where interim and final results
	overlap ("I went I went to the the market").
	"""
	s = re.sub(r"\s+", " ", text or "").strip()
	if not s:
		return s
	patterns = [
		(r"\b(\w+\s+\w+\s+\w+)(?:\s+\1\b)+", r"\1"),
		(r"\b(\w+\s+\w+)(?:\s+\1\b)+", r"\1"),
		(r"\b(\w+)(?:\s+\1\b)+", r"\1"),
	]
	for pat, rep in patterns:
		s = re.sub(pat, rep, s, flags=re.IGNORECASE)
	return re.sub(r"\s+", " ", s).strip()


class GoogleSpeechTranscriber:
	def __init__(
		self,
		client: Optional[Any] = None,
		*,
		max_audio_bytes: Optional[int] = None,
		sample_rate_hz: Optional[int] = None,
		model: Optional[str] = None,
	) -> None:
		self._client = client
		self.max_audio_bytes = max_audio_bytes if max_audio_bytes is not None else settings.max_transcription_bytes
		self.sample_rate_hz = sample_rate_hz or settings.speech_sample_rate_hz
		self.model = model or settings.speech_model

	def _get_client(self) -> Any:
		# Created lazily: constructing the client resolves credentials
		if self._client is None:
			try:
				self._client = speech.SpeechAsyncClient()
			except Exception as e:
				raise TranscriptionError(f"Speech client unavailable: {e}") from e
		return self._client

	def build_config(self, language: str) -> speech.RecognitionConfig:
		return speech.RecognitionConfig(
			encoding=speech.RecognitionConfig.AudioEncoding.WEBM_OPUS,
			sample_rate_hertz=self.sample_rate_hz,
			language_code=speech_locale(language),
			model=self.model,
			enable_automatic_punctuation=True,
			profanity_filter=False,
		)

	async def transcribe(self, audio: bytes, language: str) -> str:
		if not audio:
			raise TranscriptionError("Empty audio payload")
		if len(audio) > self.max_audio_bytes:
			raise TranscriptionError(
				f"Audio too large for transcription ({len(audio)} bytes, max {self.max_audio_bytes})"
			)
		client = self._get_client()
		try:
			response = await client.recognize(
				config=self.build_config(language),
				audio=speech.RecognitionAudio(content=audio),
			)
		except GoogleAPIError as e:
			raise TranscriptionError(f"Speech-to-Text API error: {e}") from e

		pieces = []
		for result in response.results:
			if result.alternatives:
				pieces.append(result.alternatives[0].transcript)
		text = dedupe_transcript(" ".join(pieces))
		logger.debug("Transcribed {} bytes ({}): {!r}", len(audio), language, text[:80])
		return text
