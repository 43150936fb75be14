"""Shared fakes and fixtures for relay tests."""

import asyncio
from typing import Callable, List, Optional

import pytest

from oral_relay.engines.synthesis import SynthesisError
from oral_relay.engines.transcription import TranscriptionError
from oral_relay.languages import default_rubric
from oral_relay.relay.channel import OutboundChannel
from oral_relay.relay.handler import RelayService
from oral_relay.relay.pipeline import TurnPipeline
from oral_relay.schemas import RubricCriterion, RubricSpec, SessionRecord
from oral_relay.settings import Settings


# =============================================================================
# Timers
# =============================================================================


class ManualHandle:
	def __init__(self, due: float, callback: Callable[[], None]) -> None:
		self.due = due
		self.callback = callback
		self.cancelled = False

	def cancel(self) -> None:
		self.cancelled = True


class ManualScheduler:
	"""Scheduler driven by advance() instead of wall-clock time."""

	def __init__(self) -> None:
		self.now = 0.0
		self.handles: List[ManualHandle] = []

	def call_later(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
		handle = ManualHandle(self.now + delay, callback)
		self.handles.append(handle)
		return handle

	def pending(self) -> List[ManualHandle]:
		return [h for h in self.handles if not h.cancelled]

	def advance(self, seconds: float) -> int:
		"""Move the clock forward, firing due callbacks in order. Returns how many fired."""
		target = self.now + seconds
		fired = 0
		while True:
			due = sorted(
				(h for h in self.handles if not h.cancelled and h.due <= target + 1e-9),
				key=lambda h: h.due,
			)
			if not due:
				break
			handle = due[0]
			self.handles.remove(handle)
			self.now = max(self.now, handle.due)
			handle.callback()
			fired += 1
		self.now = target
		return fired


# =============================================================================
# Engines and store
# =============================================================================


class FakeTranscriber:
	def __init__(self, responses: Optional[List[str]] = None, *, error: Optional[Exception] = None) -> None:
		self.responses = responses or ["I like to read books"]
		self.error = error
		self.calls: List[tuple] = []
		self.gate: Optional[asyncio.Event] = None

	async def transcribe(self, audio: bytes, language: str) -> str:
		self.calls.append((audio, language))
		if self.gate is not None:
			await self.gate.wait()
		if self.error is not None:
			raise self.error
		return self.responses[(len(self.calls) - 1) % len(self.responses)]


class FakeGenerator:
	def __init__(self, question: str = "What kind of books do you enjoy?", *, fail: bool = False) -> None:
		self.question = question
		self.fail = fail
		self.calls: List[tuple] = []

	async def generate(self, transcript, rubric, language, context=None) -> str:
		self.calls.append((list(transcript), rubric, language, context))
		if self.fail:
			raise RuntimeError("generation engine down")
		return self.question


class FakeSynthesizer:
	def __init__(self, audio: bytes = b"ID3-fake-mp3", *, fail: bool = False) -> None:
		self.audio = audio
		self.fail = fail
		self.calls: List[tuple] = []

	async def synthesize(self, text: str, language: str) -> bytes:
		self.calls.append((text, language))
		if self.fail:
			raise SynthesisError("Failed to generate speech")
		return self.audio


class FakeStore:
	def __init__(self, records: Optional[dict] = None, *, fail_save: bool = False) -> None:
		self.records = records or {}
		self.fail_save = fail_save
		self.saved: List[tuple] = []

	async def load_session(self, session_id: str) -> Optional[SessionRecord]:
		return self.records.get(session_id)

	async def save_transcript(self, session_id, transcript) -> None:
		if self.fail_save:
			raise RuntimeError("database unavailable")
		self.saved.append((session_id, list(transcript)))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def scheduler() -> ManualScheduler:
	return ManualScheduler()


@pytest.fixture
def transcriber() -> FakeTranscriber:
	return FakeTranscriber()


@pytest.fixture
def generator() -> FakeGenerator:
	return FakeGenerator()


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
	return FakeSynthesizer()


@pytest.fixture
def assessment_rubric() -> RubricSpec:
	return RubricSpec(
		name="Conversation",
		language="en",
		criteria=[
			RubricCriterion(name="Accuracy", weight=0.3, description="Grammar and vocabulary"),
			RubricCriterion(name="Fluency", weight=0.3, description="Flow"),
			RubricCriterion(name="Content", weight=0.4, description="Relevance"),
		],
	)


@pytest.fixture
def make_service(scheduler, transcriber, generator, synthesizer):
	def _make(*, store=None, retry_deferred_flush=True, listening_ack=False, stage_timeout=5.0):
		pipeline = TurnPipeline(
			transcriber=transcriber,
			generator=generator,
			synthesizer=synthesizer,
			store=store,
			stage_timeout=stage_timeout,
		)
		return RelayService(
			pipeline,
			store=store,
			scheduler=scheduler,
			silence_window_seconds=1.0,
			retry_deferred_flush=retry_deferred_flush,
			listening_ack=listening_ack,
		)
	return _make


@pytest.fixture
def channel() -> OutboundChannel:
	return OutboundChannel()


@pytest.fixture
def test_settings() -> Settings:
	return Settings(
		_env_file=None,
		DATABASE_URL=None,
		SILENCE_WINDOW_MS=50,
		ENGINE_TIMEOUT_SECONDS=5,
		HTTP_TURN_TIMEOUT_SECONDS=5,
		LOG_DIR="",
	)


def non_processing(events) -> List[str]:
	return [e.type for e in events if e.type != "processing"]


def record_for(session_id: str, language: str = "es") -> SessionRecord:
	return SessionRecord(
		session_id=session_id,
		student_id="student-1",
		student_name="Ana",
		language=language,
		rubric=default_rubric(language),
	)
