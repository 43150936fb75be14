import asyncio
import base64

import pytest

from conftest import FakeStore, non_processing, record_for
from oral_relay.engines.generation import FALLBACK_QUESTION
from oral_relay.engines.synthesis import FallbackSynthesizer
from oral_relay.engines.transcription import TranscriptionError
from oral_relay.relay.pipeline import TurnOutcome
from oral_relay.relay.protocol import JoinData


async def _joined(service, channel, session_id="demo-1", **join):
	session = await service.registry.join(session_id, JoinData(**join), channel)
	channel.drain()
	return session


async def _run(service, session, audio=b"a" * 5000):
	session.buffer.append(audio)
	audio = session.begin_turn()
	assert session.is_processing
	return await service.pipeline.run_turn(session, audio)


async def test_successful_turn_emits_stages_in_order(make_service, channel, transcriber, generator, synthesizer):
	service = make_service()
	session = await _joined(service, channel, language="en")

	outcome = await _run(service, session)

	assert outcome is TurnOutcome.COMPLETED
	events = channel.drain()
	assert [e.type for e in events] == [
		"processing",
		"transcription",
		"processing",
		"ai_response",
		"processing",
		"ai_audio",
		"ready",
	]
	assert events[1].text == "I like to read books"
	assert events[1].speaker == "student"
	assert events[3].text == generator.question
	assert events[3].speaker == "ai"
	assert base64.b64decode(events[5].audio) == synthesizer.audio
	assert events[5].format == "mp3"
	assert not session.is_processing
	assert transcriber.calls == [(b"a" * 5000, "en")]
	assert synthesizer.calls == [(generator.question, "en")]


async def test_transcript_grows_by_two_with_student_first(make_service, channel):
	service = make_service()
	session = await _joined(service, channel)
	await _run(service, session)
	await _run(service, session)

	assert [e.speaker for e in session.transcript] == ["student", "ai", "student", "ai"]
	assert session.transcript[0].timestamp <= session.transcript[1].timestamp


async def test_generator_sees_full_history_including_current_answer(make_service, channel, generator):
	service = make_service()
	session = await _joined(service, channel)
	await _run(service, session)
	await _run(service, session)

	history, rubric, language, context = generator.calls[-1]
	assert len(history) == 3
	assert history[-1].speaker == "student"
	assert context == {"sessionId": "demo-1"}
	assert rubric == session.rubric


async def test_whitespace_transcription_aborts_turn(make_service, channel, transcriber):
	transcriber.responses = ["   \n "]
	service = make_service()
	session = await _joined(service, channel)

	outcome = await _run(service, session)

	assert outcome is TurnOutcome.NO_SPEECH
	assert session.transcript == []
	types = non_processing(channel.drain())
	assert "transcription" not in types
	assert "ai_response" not in types
	assert "ai_audio" not in types
	assert types == ["ready"]
	assert not session.is_processing


async def test_transcription_error_emits_error_and_keeps_transcript(make_service, channel, transcriber, generator):
	transcriber.error = TranscriptionError("bad audio")
	service = make_service()
	session = await _joined(service, channel)

	outcome = await _run(service, session)

	assert outcome is TurnOutcome.TRANSCRIPTION_FAILED
	assert session.transcript == []
	assert non_processing(channel.drain()) == ["error"]
	assert generator.calls == []
	assert not session.is_processing


async def test_generation_failure_uses_fallback_without_error(make_service, channel, generator):
	generator.fail = True
	service = make_service()
	session = await _joined(service, channel)

	for _ in range(3):
		outcome = await _run(service, session)
		assert outcome is TurnOutcome.COMPLETED

	events = channel.drain()
	responses = [e.text for e in events if e.type == "ai_response"]
	assert responses == [FALLBACK_QUESTION] * 3
	assert "error" not in [e.type for e in events]


async def test_generation_timeout_uses_fallback(make_service, channel, generator):
	async def slow(*args, **kwargs):
		await asyncio.sleep(1)
		return "never"

	generator.generate = slow
	service = make_service(stage_timeout=0.05)
	session = await _joined(service, channel)

	outcome = await _run(service, session)

	assert outcome is TurnOutcome.COMPLETED
	assert session.transcript[-1].text == FALLBACK_QUESTION


async def test_synthesis_failure_keeps_text_turn(make_service, channel, synthesizer):
	synthesizer.fail = True
	store = FakeStore({"s-1": record_for("s-1")})
	service = make_service(store=store)
	session = await _joined(service, channel, session_id="s-1")

	outcome = await _run(service, session)

	assert outcome is TurnOutcome.SYNTHESIS_FAILED
	assert non_processing(channel.drain()) == ["transcription", "ai_response", "error"]
	assert len(session.transcript) == 2
	# text turn is still persisted
	assert store.saved and len(store.saved[-1][1]) == 2
	assert not session.is_processing


async def test_transcription_timeout_is_failure(make_service, channel, transcriber):
	transcriber.gate = asyncio.Event()
	service = make_service(stage_timeout=0.05)
	session = await _joined(service, channel)

	outcome = await _run(service, session)

	assert outcome is TurnOutcome.TRANSCRIPTION_FAILED
	assert non_processing(channel.drain()) == ["error"]


async def test_persistence_failure_is_not_surfaced(make_service, channel):
	store = FakeStore({"s-1": record_for("s-1")}, fail_save=True)
	service = make_service(store=store)
	session = await _joined(service, channel, session_id="s-1")

	outcome = await _run(service, session)

	assert outcome is TurnOutcome.COMPLETED
	assert non_processing(channel.drain())[-1] == "ready"
	assert len(session.transcript) == 2


async def test_demo_session_is_not_persisted(make_service, channel):
	store = FakeStore({})
	service = make_service(store=store)
	session = await _joined(service, channel, session_id="demo-abc")

	await _run(service, session)

	assert session.demo
	assert store.saved == []


async def test_persisted_transcript_is_full_history(make_service, channel):
	store = FakeStore({"s-1": record_for("s-1")})
	service = make_service(store=store)
	session = await _joined(service, channel, session_id="s-1")

	await _run(service, session)
	await _run(service, session)

	assert len(store.saved) == 2
	session_id, transcript = store.saved[-1]
	assert session_id == "s-1"
	assert [e.speaker for e in transcript] == ["student", "ai", "student", "ai"]


async def test_unexpected_fault_still_terminates_turn(make_service, channel, synthesizer):
	service = make_service()
	session = await _joined(service, channel)

	def boom(*args, **kwargs):
		raise KeyError("wires crossed")

	# not a coroutine: blows up before any await inside the stage
	synthesizer.synthesize = boom
	outcome = await _run(service, session)

	assert outcome in (TurnOutcome.SYNTHESIS_FAILED, TurnOutcome.FAILED)
	assert non_processing(channel.drain())[-1] == "error"
	assert not session.is_processing


class HangingEngine:
	name = "hanging"

	async def synthesize(self, text, language):
		await asyncio.sleep(10)
		return b"never"


class WorkingEngine:
	name = "working"

	def __init__(self):
		self.calls = 0

	async def synthesize(self, text, language):
		self.calls += 1
		return b"ID3-secondary"


async def test_hung_primary_speech_engine_falls_back_to_secondary(make_service, channel):
	secondary = WorkingEngine()
	service = make_service(stage_timeout=0.2)
	service.pipeline.synthesizer = FallbackSynthesizer([HangingEngine(), secondary], engine_timeout=0.15)
	session = await _joined(service, channel)

	outcome = await _run(service, session)

	assert outcome is TurnOutcome.COMPLETED
	events = [e for e in channel.drain() if e.type != "processing"]
	assert [e.type for e in events] == ["transcription", "ai_response", "ai_audio", "ready"]
	assert base64.b64decode(events[2].audio) == b"ID3-secondary"
	assert secondary.calls == 1
