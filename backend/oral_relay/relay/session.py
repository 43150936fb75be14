from __future__ import annotations
import asyncio
from functools import partial
from typing import Callable, List, Optional

from loguru import logger

from ..schemas import RubricSpec, TranscriptEntry
from .buffer import UtteranceBuffer
from .channel import OutboundChannel
from .silence import Scheduler, SilenceDetector


class InterviewSession:
	"""Live state of one joined interview session.

	Attributes:
		session_id: routing key, unique among live sessions
		language: target language code, fixed at join
		rubric: criteria used for question generation
		transcript: append-only conversation history
		channel: outbound events for the owning connection
		buffer: audio received since the last flush
		detector: silence timer that triggers flushes
		is_processing: True while a turn pipeline runs
		flush_deferred: a flush was attempted while is_processing was True
		demo: in-memory only, never persisted
	"""

	def __init__(
		self,
		session_id: str,
		language: str,
		rubric: RubricSpec,
		channel: OutboundChannel,
		*,
		scheduler: Scheduler,
		silence_window_seconds: float,
		on_flush: Callable[["InterviewSession"], None],
		transcript: Optional[List[TranscriptEntry]] = None,
		student_id: Optional[str] = None,
		student_name: Optional[str] = None,
		demo: bool = False,
	) -> None:
		self.session_id = session_id
		self.language = language
		self.rubric = rubric
		self.channel = channel
		self.transcript: List[TranscriptEntry] = list(transcript or [])
		self.student_id = student_id
		self.student_name = student_name
		self.demo = demo
		self.buffer = UtteranceBuffer()
		self.detector = SilenceDetector(scheduler, silence_window_seconds, partial(on_flush, self))
		self.is_processing = False
		self.flush_deferred = False
		self.closed = False
		self.turn_task: Optional[asyncio.Task] = None
		self.turns_started = 0

	def add_chunk(self, chunk: bytes) -> None:
		self.buffer.append(chunk)
		self.detector.arm()

	def begin_turn(self) -> Optional[bytes]:
		"""Claim the session for a pipeline run and take the buffered audio.

		Returns None when nothing should run: the session is closed, a turn
		is already in flight, or the buffer is empty. Check and set of
		is_processing happen without suspending.
		"""
		if self.closed:
			return None
		if self.is_processing:
			self.flush_deferred = True
			logger.debug("Flush for {} deferred: turn in flight", self.session_id)
			return None
		audio = self.buffer.drain_all()
		if not audio:
			return None
		self.is_processing = True
		self.flush_deferred = False
		self.turns_started += 1
		return audio

	def end_turn(self) -> None:
		self.is_processing = False

	def take_deferred_flush(self) -> bool:
		"""True when a flush was skipped during the last turn and audio is waiting."""
		deferred = self.flush_deferred
		self.flush_deferred = False
		return deferred and bool(self.buffer) and not self.closed

	def close(self) -> None:
		# Timer first so it cannot fire against a discarded session
		self.detector.cancel()
		self.buffer.clear()
		self.closed = True
