"""
Turn pipeline: one flushed utterance in, one persisted AI turn out.

	transcribe -> append student entry -> generate question -> append AI entry
	-> synthesize speech -> persist transcript -> ready

Stages run strictly in sequence since each consumes the previous one's
output. Every engine call and the store write is bounded by a timeout; a
timeout takes that stage's failure path. A synthesis fallback chain bounds
each of its engines, so a hung primary still leaves time for the secondary.

Failure handling per stage:
- transcription error: `error`, transcript untouched
- empty transcription: transcript untouched, `ready` so the client can retry
- generation error: replaced by FALLBACK_QUESTION, never surfaced
- synthesis error (all engines): `error`, text turn kept and persisted
- persistence error: logged only
"""

from __future__ import annotations

import asyncio
import base64
import enum
from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from ..engines.base import QuestionGenerator, SpeechSynthesizer, Transcriber, TranscriptStore
from ..engines.generation import generate_or_fallback
from ..engines.synthesis import AUDIO_FORMAT
from ..schemas import TranscriptEntry
from .protocol import (
	AiAudioEvent,
	AiResponseEvent,
	ErrorEvent,
	OutboundEvent,
	ProcessingEvent,
	ReadyEvent,
	TranscriptionEvent,
)
from .session import InterviewSession


class TurnOutcome(str, enum.Enum):
	COMPLETED = "completed"
	NO_SPEECH = "no_speech"
	TRANSCRIPTION_FAILED = "transcription_failed"
	SYNTHESIS_FAILED = "synthesis_failed"
	FAILED = "failed"


MSG_TRANSCRIBING = "Transcribing audio..."
MSG_GENERATING = "Generating response..."
MSG_SYNTHESIZING = "Generating speech..."


class TurnPipeline:
	def __init__(
		self,
		*,
		transcriber: Transcriber,
		generator: QuestionGenerator,
		synthesizer: SpeechSynthesizer,
		store: Optional[TranscriptStore] = None,
		stage_timeout: Optional[float] = 30.0,
		audio_format: str = AUDIO_FORMAT,
	) -> None:
		self.transcriber = transcriber
		self.generator = generator
		self.synthesizer = synthesizer
		self.store = store
		self.stage_timeout = stage_timeout
		self.audio_format = audio_format

	async def run_turn(self, session: InterviewSession, audio: bytes) -> TurnOutcome:
		"""Run one turn. The caller has already set session.is_processing
		(see InterviewSession.begin_turn); it is cleared here before the
		terminal `ready`/`error` event goes out."""
		log = logger.bind(session_id=session.session_id)
		try:
			outcome, terminal = await self._execute(session, audio, log)
		except Exception:
			log.exception("Turn failed unexpectedly")
			outcome, terminal = TurnOutcome.FAILED, ErrorEvent(message="Failed to process audio")
		finally:
			session.end_turn()
		session.channel.emit(terminal)
		log.info("Turn finished: {}", outcome.value)
		return outcome

	async def _bounded(self, awaitable, timeout: Optional[float] = None):
		return await asyncio.wait_for(awaitable, timeout if timeout is not None else self.stage_timeout)

	def _synthesis_timeout(self) -> Optional[float]:
		"""Stage bound for synthesis. A fallback chain limits each engine itself,
		so the stage must leave room for every engine in the chain."""
		chain = getattr(self.synthesizer, "total_timeout", None)
		if chain is None or self.stage_timeout is None:
			return self.stage_timeout
		return max(self.stage_timeout, chain)

	async def _execute(self, session: InterviewSession, audio: bytes, log) -> tuple[TurnOutcome, OutboundEvent]:
		emit = session.channel.emit

		emit(ProcessingEvent(message=MSG_TRANSCRIBING))
		try:
			text = await self._bounded(self.transcriber.transcribe(audio, session.language))
		except Exception as e:
			log.warning("Transcription of {} bytes failed: {}", len(audio), e)
			return TurnOutcome.TRANSCRIPTION_FAILED, ErrorEvent(message="Failed to transcribe audio")
		text = (text or "").strip()
		if not text:
			log.info("No speech detected in {} bytes", len(audio))
			return TurnOutcome.NO_SPEECH, ReadyEvent(message="No speech detected")

		session.transcript.append(TranscriptEntry(speaker="student", text=text, timestamp=_now()))
		emit(TranscriptionEvent(text=text))

		emit(ProcessingEvent(message=MSG_GENERATING))
		question = await generate_or_fallback(
			self.generator,
			list(session.transcript),
			session.rubric,
			session.language,
			{"sessionId": session.session_id},
			timeout=self.stage_timeout,
		)
		session.transcript.append(TranscriptEntry(speaker="ai", text=question, timestamp=_now()))
		emit(AiResponseEvent(text=question))

		emit(ProcessingEvent(message=MSG_SYNTHESIZING))
		speech_failed = False
		try:
			speech = await self._bounded(
				self.synthesizer.synthesize(question, session.language),
				self._synthesis_timeout(),
			)
		except Exception as e:
			log.error("Speech synthesis failed: {}", e)
			speech_failed = True
		else:
			emit(AiAudioEvent(audio=base64.b64encode(speech).decode("ascii"), format=self.audio_format))

		await self._persist(session, log)

		if speech_failed:
			return TurnOutcome.SYNTHESIS_FAILED, ErrorEvent(message="Failed to generate speech")
		return TurnOutcome.COMPLETED, ReadyEvent()

	async def _persist(self, session: InterviewSession, log) -> None:
		if session.demo or self.store is None:
			return
		try:
			await self._bounded(self.store.save_transcript(session.session_id, list(session.transcript)))
		except Exception as e:
			log.error("Failed to persist transcript: {}", e)


def _now() -> datetime:
	return datetime.now(timezone.utc)
