from __future__ import annotations
from typing import Callable, Dict, Iterator, Optional

from loguru import logger

from ..engines.base import TranscriptStore
from ..languages import DEFAULT_LANGUAGE, default_rubric
from .channel import OutboundChannel
from .protocol import JoinData
from .session import InterviewSession
from .silence import Scheduler


class SessionLookupError(LookupError):
	"""Join failed in a way the client should be told about."""

	def __init__(self, message: str) -> None:
		super().__init__(message)
		self.message = message


class SessionRegistry:
	"""Live interview sessions keyed by session id.

	Joins either look the session up in the durable store or, in demo mode
	(no store, or an id with the demo prefix), build it from what the client
	sent plus defaults.
	"""

	def __init__(
		self,
		*,
		store: Optional[TranscriptStore],
		scheduler: Scheduler,
		silence_window_seconds: float,
		on_flush: Callable[[InterviewSession], None],
		demo_prefix: str = "demo-",
	) -> None:
		self._store = store
		self._scheduler = scheduler
		self._silence_window_seconds = silence_window_seconds
		self._on_flush = on_flush
		self._demo_prefix = demo_prefix
		self._sessions: Dict[str, InterviewSession] = {}

	def is_demo(self, session_id: str) -> bool:
		return self._store is None or (bool(self._demo_prefix) and session_id.startswith(self._demo_prefix))

	def _build(self, session_id: str, channel: OutboundChannel, **kwargs) -> InterviewSession:
		return InterviewSession(
			session_id,
			channel=channel,
			scheduler=self._scheduler,
			silence_window_seconds=self._silence_window_seconds,
			on_flush=self._on_flush,
			**kwargs,
		)

	async def join(self, session_id: str, join_data: JoinData, channel: OutboundChannel) -> InterviewSession:
		if self.is_demo(session_id):
			language = join_data.language or DEFAULT_LANGUAGE
			session = self._build(
				session_id,
				channel,
				language=language,
				rubric=join_data.rubric or default_rubric(language),
				student_id=join_data.student_id or "demo-student",
				student_name=join_data.student_name,
				demo=True,
			)
		else:
			record = await self._store.load_session(session_id)
			if record is None:
				raise SessionLookupError("Session not found")
			session = self._build(
				session_id,
				channel,
				language=record.language,
				rubric=record.rubric,
				transcript=record.transcript,
				student_id=record.student_id,
				student_name=record.student_name,
			)

		previous = self._sessions.get(session_id)
		if previous is not None:
			logger.info("Session {} re-joined; replacing previous connection", session_id)
			previous.close()
		self._sessions[session_id] = session
		logger.info("Client joined session {} (language={}, demo={})", session_id, session.language, session.demo)
		return session

	def get(self, session_id: Optional[str]) -> Optional[InterviewSession]:
		if not session_id:
			return None
		return self._sessions.get(session_id)

	def remove(self, session_id: str, session: Optional[InterviewSession] = None) -> None:
		"""Close and forget a session. When `session` is given, only remove the
		entry if it is still that object (a re-join may have replaced it)."""
		current = self._sessions.get(session_id)
		if current is None:
			return
		if session is not None and current is not session:
			session.close()
			return
		current.close()
		del self._sessions[session_id]
		logger.info("Session {} removed", session_id)

	def __contains__(self, session_id: str) -> bool:
		return session_id in self._sessions

	def __len__(self) -> int:
		return len(self._sessions)

	def __iter__(self) -> Iterator[InterviewSession]:
		return iter(list(self._sessions.values()))
