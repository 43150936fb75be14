from __future__ import annotations
import asyncio
import base64
import binascii
from typing import Optional, Set, Union

from loguru import logger
from pydantic import ValidationError

from ..engines.base import TranscriptStore
from ..settings import Settings
from .channel import OutboundChannel
from .pipeline import TurnPipeline
from .protocol import (
	ErrorEvent,
	InboundMessage,
	JoinData,
	PongEvent,
	ProcessingEvent,
	ProtocolError,
	SessionJoinedEvent,
	decode_message,
)
from .registry import SessionLookupError, SessionRegistry
from .session import InterviewSession
from .silence import LoopScheduler, Scheduler


class RelayService:
	"""Process-wide relay state: the session registry, the turn pipeline and
	the set of in-flight turn tasks. Built once at startup."""

	def __init__(
		self,
		pipeline: TurnPipeline,
		*,
		store: Optional[TranscriptStore] = None,
		scheduler: Optional[Scheduler] = None,
		silence_window_seconds: float = 1.0,
		retry_deferred_flush: bool = True,
		listening_ack: bool = True,
		demo_prefix: str = "demo-",
	) -> None:
		self.pipeline = pipeline
		self.retry_deferred_flush = retry_deferred_flush
		self.listening_ack = listening_ack
		self.registry = SessionRegistry(
			store=store,
			scheduler=scheduler or LoopScheduler(),
			silence_window_seconds=silence_window_seconds,
			on_flush=self.flush,
			demo_prefix=demo_prefix,
		)
		self._tasks: Set[asyncio.Task] = set()

	@classmethod
	def from_settings(
		cls,
		settings: Settings,
		pipeline: TurnPipeline,
		*,
		store: Optional[TranscriptStore] = None,
		scheduler: Optional[Scheduler] = None,
	) -> "RelayService":
		return cls(
			pipeline,
			store=store,
			scheduler=scheduler,
			silence_window_seconds=settings.silence_window_ms / 1000.0,
			retry_deferred_flush=settings.retry_deferred_flush,
			listening_ack=settings.listening_ack,
			demo_prefix=settings.demo_session_prefix,
		)

	def connect(self, channel: OutboundChannel) -> "RelayConnection":
		return RelayConnection(self, channel)

	def flush(self, session: InterviewSession) -> Optional[asyncio.Task]:
		"""Start a turn for whatever audio is buffered. Called by the silence
		detector (timer or explicit end of turn); never suspends."""
		audio = session.begin_turn()
		if audio is None:
			return None
		task = asyncio.get_running_loop().create_task(self._run_turn(session, audio))
		session.turn_task = task
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)
		return task

	async def _run_turn(self, session: InterviewSession, audio: bytes) -> None:
		await self.pipeline.run_turn(session, audio)
		if session.take_deferred_flush():
			if self.retry_deferred_flush:
				logger.debug("Re-arming silence timer for deferred flush on {}", session.session_id)
				session.detector.arm()
			else:
				logger.info(
					"Dropped flush for {} attempted during an in-flight turn ({} bytes waiting)",
					session.session_id,
					session.buffer.size,
				)

	async def wait_idle(self) -> None:
		"""Wait until no turn task is running (including ones started meanwhile)."""
		while self._tasks:
			await asyncio.gather(*list(self._tasks), return_exceptions=True)

	async def aclose(self) -> None:
		for session in self.registry:
			self.registry.remove(session.session_id, session)
		await self.wait_idle()


class RelayConnection:
	"""Protocol handler for one client connection.

	Frames are handled one at a time in arrival order. Turn pipelines run as
	separate tasks, so audio chunks keep flowing into the buffer while a turn
	is in flight.
	"""

	def __init__(self, service: RelayService, channel: OutboundChannel) -> None:
		self.service = service
		self.channel = channel
		self._sessions: Set[str] = set()

	@property
	def registry(self) -> SessionRegistry:
		return self.service.registry

	def _error(self, message: str) -> None:
		self.channel.emit(ErrorEvent(message=message))

	async def handle_raw(self, raw: Union[str, bytes]) -> None:
		try:
			message = decode_message(raw)
		except ProtocolError as e:
			logger.warning("Rejected inbound frame: {}", e)
			self._error("Failed to process message")
			return
		await self.handle(message)

	async def handle(self, message: InboundMessage) -> None:
		try:
			if message.type == "join_session":
				await self._join(message)
			elif message.type == "audio_chunk":
				self._audio_chunk(message)
			elif message.type == "audio_end":
				self._audio_end(message)
			elif message.type == "ping":
				self.channel.emit(PongEvent())
			else:
				logger.warning("Unknown message type: {}", message.type)
				self._error(f"Unknown message type: {message.type}")
		except Exception:
			logger.exception("Error handling {} message", message.type)
			self._error("Failed to process message")

	def _owned(self, session_id: Optional[str]) -> Optional[InterviewSession]:
		session = self.registry.get(session_id)
		if session is None or session.channel is not self.channel:
			return None
		return session

	async def _join(self, message: InboundMessage) -> None:
		session_id = message.session_id
		if not session_id:
			self._error("sessionId is required")
			return
		try:
			join_data = JoinData.model_validate(message.data or {})
		except ValidationError:
			self._error("Invalid join data")
			return
		try:
			session = await self.registry.join(session_id, join_data, self.channel)
		except SessionLookupError as e:
			logger.info("Join rejected for {}: {}", session_id, e.message)
			self._error(e.message)
			return
		except Exception:
			logger.exception("Error joining session {}", session_id)
			self._error("Failed to join session")
			return
		self._sessions.add(session_id)
		self.channel.emit(
			SessionJoinedEvent(
				session_id=session_id,
				language=session.language,
				rubric=session.rubric,
				data={"demo": True} if session.demo else None,
			)
		)

	def _audio_chunk(self, message: InboundMessage) -> None:
		session = self._owned(message.session_id)
		if session is None:
			self._error("Session not found")
			return
		encoded = (message.data or {}).get("audio")
		if not isinstance(encoded, str):
			self._error("Missing audio payload")
			return
		try:
			chunk = base64.b64decode(encoded, validate=True)
		except (binascii.Error, ValueError):
			self._error("Invalid audio payload")
			return
		session.add_chunk(chunk)
		if self.service.listening_ack:
			self.channel.emit(ProcessingEvent(message="Listening..."))

	def _audio_end(self, message: InboundMessage) -> None:
		session = self._owned(message.session_id)
		if session is None:
			self._error("Session not found")
			return
		session.detector.fire_now()

	def close(self) -> None:
		for session_id in list(self._sessions):
			session = self.registry.get(session_id)
			if session is not None and session.channel is self.channel:
				self.registry.remove(session_id, session)
		self._sessions.clear()
		logger.info("Connection closed")
