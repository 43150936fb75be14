"""
Text-to-speech for interviewer questions.

ElevenLabs is preferred for voice quality; OpenAI speech is the fallback.
Both return MP3. FallbackSynthesizer raises SynthesisError once every
engine has failed.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence

import httpx
from loguru import logger

from ..settings import settings


AUDIO_FORMAT = "mp3"


class SynthesisError(RuntimeError):
	pass


# Voice ids per language; unknown languages use the English voice
ELEVENLABS_VOICES: Dict[str, str] = {
	"en": "pNInz6obpgDQGcFmaJgB",  # Adam
	"es": "9BWtsMINqrJLrRacOk9x",  # Aria
	"ar": "yoZ06aMxZJJ28mfd3POQ",  # Sam
	"ru": "Yko7PKHZNXotIFUBG7I9",  # Antoni
	"uk": "EXAVITQu4vr4xnSDxMaL",  # Elli
}


class ElevenLabsSynthesizer:
	name = "elevenlabs"

	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		model: Optional[str] = None,
		base_url: Optional[str] = None,
		voices: Optional[Dict[str, str]] = None,
		timeout: Optional[float] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.elevenlabs_api_key
		self.model = model or settings.elevenlabs_model
		self.base_url = (base_url or settings.elevenlabs_base_url).rstrip("/")
		self.voices = voices or ELEVENLABS_VOICES
		timeout = timeout if timeout is not None else settings.engine_timeout_seconds
		self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

	def voice_for(self, language: str) -> str:
		return self.voices.get(language.split("-")[0], self.voices["en"])

	async def synthesize(self, text: str, language: str) -> bytes:
		if not self.api_key:
			raise SynthesisError("ElevenLabs API key not configured")
		url = f"{self.base_url}/text-to-speech/{self.voice_for(language)}"
		headers = {
			"Accept": "audio/mpeg",
			"Content-Type": "application/json",
			"xi-api-key": self.api_key,
		}
		payload = {
			"text": text,
			"model_id": self.model,
			"voice_settings": {"stability": 0.5, "similarity_boost": 0.5},
		}
		try:
			r = await self._client.post(url, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as e:
			raise SynthesisError(f"ElevenLabs API error: {e.response.status_code}") from e
		except httpx.RequestError as e:
			raise SynthesisError(f"ElevenLabs request failed: {e}") from e
		if not r.content:
			raise SynthesisError("ElevenLabs returned no audio")
		return r.content

	async def aclose(self) -> None:
		await self._client.aclose()


class OpenAISpeechSynthesizer:
	name = "openai"

	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		model: Optional[str] = None,
		voice: Optional[str] = None,
		base_url: Optional[str] = None,
		timeout: Optional[float] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.openai_api_key
		self.model = model or settings.openai_tts_model
		self.voice = voice or settings.openai_tts_voice
		self.base_url = (base_url or settings.openai_base_url).rstrip("/")
		timeout = timeout if timeout is not None else settings.engine_timeout_seconds
		self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

	async def synthesize(self, text: str, language: str) -> bytes:
		# The model infers the language from the input text
		if not self.api_key:
			raise SynthesisError("OpenAI API key not configured")
		headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
		payload = {
			"model": self.model,
			"voice": self.voice,
			"input": text,
			"response_format": AUDIO_FORMAT,
		}
		try:
			r = await self._client.post(f"{self.base_url}/audio/speech", headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as e:
			raise SynthesisError(f"OpenAI speech API error: {e.response.status_code}") from e
		except httpx.RequestError as e:
			raise SynthesisError(f"OpenAI speech request failed: {e}") from e
		if not r.content:
			raise SynthesisError("OpenAI speech returned no audio")
		return r.content

	async def aclose(self) -> None:
		await self._client.aclose()


class FallbackSynthesizer:
	"""Try each engine in order and return the first audio produced.

	Each engine gets its own `engine_timeout`; an engine that hangs counts
	as failed and the next one is tried.
	"""

	def __init__(self, engines: Sequence, *, engine_timeout: Optional[float] = None) -> None:
		if not engines:
			raise ValueError("FallbackSynthesizer needs at least one engine")
		self.engines: List = list(engines)
		self.engine_timeout = engine_timeout

	@property
	def total_timeout(self) -> Optional[float]:
		if self.engine_timeout is None:
			return None
		return self.engine_timeout * len(self.engines)

	async def synthesize(self, text: str, language: str) -> bytes:
		errors: List[str] = []
		for engine in self.engines:
			name = getattr(engine, "name", type(engine).__name__)
			try:
				return await asyncio.wait_for(engine.synthesize(text, language), self.engine_timeout)
			except asyncio.TimeoutError:
				logger.warning("TTS engine {} timed out after {}s", name, self.engine_timeout)
				errors.append(f"{name}: timed out")
			except Exception as e:
				logger.warning("TTS engine {} failed: {}", name, e)
				errors.append(f"{name}: {e}")
		raise SynthesisError("Failed to generate speech (" + "; ".join(errors) + ")")

	async def aclose(self) -> None:
		for engine in self.engines:
			close = getattr(engine, "aclose", None)
			if close is not None:
				await close()


def build_default_synthesizer() -> FallbackSynthesizer:
	return FallbackSynthesizer(
		[ElevenLabsSynthesizer(), OpenAISpeechSynthesizer()],
		engine_timeout=settings.engine_timeout_seconds,
	)
