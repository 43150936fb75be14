from __future__ import annotations
from typing import Any, List, Optional

from loguru import logger

from .db import build_engine, build_sessionmaker, init_schema
from .engines.generation import GeminiQuestionGenerator
from .engines.synthesis import build_default_synthesizer
from .engines.transcription import GoogleSpeechTranscriber
from .relay.handler import RelayService
from .relay.pipeline import TurnPipeline
from .relay.silence import Scheduler
from .scoring import TranscriptScorer
from .settings import Settings
from .store import SessionStore


class AppServices:
	"""Engines, store and relay shared by every route of one app instance."""

	def __init__(
		self,
		*,
		transcriber: Any,
		generator: Any,
		scorer: Any,
		synthesizer: Any,
		store: Optional[SessionStore],
		relay: RelayService,
		settings: Settings,
		engine: Any = None,
	) -> None:
		self.transcriber = transcriber
		self.generator = generator
		self.scorer = scorer
		self.synthesizer = synthesizer
		self.store = store
		self.relay = relay
		self.settings = settings
		self._engine = engine

	@property
	def demo_mode(self) -> bool:
		return self.store is None

	@classmethod
	def build(
		cls,
		settings: Settings,
		*,
		transcriber: Any = None,
		generator: Any = None,
		scorer: Any = None,
		synthesizer: Any = None,
		store: Optional[SessionStore] = None,
		scheduler: Optional[Scheduler] = None,
	) -> "AppServices":
		engine = None
		if store is None and settings.database_url:
			engine = build_engine(settings.database_url)
			init_schema(engine)
			store = SessionStore(build_sessionmaker(engine))
			store.ensure_default_rubrics()
		if store is None:
			logger.warning("DATABASE_URL not set: running in DEMO MODE, transcripts are not persisted")

		transcriber = transcriber or GoogleSpeechTranscriber()
		generator = generator or GeminiQuestionGenerator()
		scorer = scorer or TranscriptScorer()
		synthesizer = synthesizer or build_default_synthesizer()
		pipeline = TurnPipeline(
			transcriber=transcriber,
			generator=generator,
			synthesizer=synthesizer,
			store=store,
			stage_timeout=settings.engine_timeout_seconds,
		)
		relay = RelayService.from_settings(settings, pipeline, store=store, scheduler=scheduler)
		return cls(
			transcriber=transcriber,
			generator=generator,
			scorer=scorer,
			synthesizer=synthesizer,
			store=store,
			relay=relay,
			settings=settings,
			engine=engine,
		)

	async def aclose(self) -> None:
		await self.relay.aclose()
		closers: List[Any] = [self.generator, self.scorer, self.synthesizer]
		for component in closers:
			close = getattr(component, "aclose", None)
			if close is not None:
				await close()
		if self._engine is not None:
			self._engine.dispose()
