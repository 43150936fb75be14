"""
End-of-utterance detection by inactivity.

Every audio chunk re-arms a timer; when the stream has been quiet for the
whole window the detector fires its callback. An explicit end-of-turn fires
immediately. The timer primitive is injected so tests can drive time by hand.

State machine:

	Idle  --arm-->    Armed
	Armed --arm-->    Armed   (previous timer cancelled)
	Armed --cancel--> Idle
	Armed --elapse--> Fired   (callback runs once)
	*     --fire-->   Fired   (callback runs once, pending timer cancelled)
	Fired --arm-->    Armed
	Fired --cancel--> Idle
"""

from __future__ import annotations

import asyncio
import enum
from typing import Callable, Optional, Protocol


class SilenceState(str, enum.Enum):
	IDLE = "idle"
	ARMED = "armed"
	FIRED = "fired"


class SilenceEvent(str, enum.Enum):
	ARM = "arm"
	CANCEL = "cancel"
	ELAPSE = "elapse"
	FIRE = "fire"


def next_state(state: SilenceState, event: SilenceEvent) -> SilenceState:
	"""Pure transition function. Returns the same state for no-op events."""
	if event is SilenceEvent.ARM:
		return SilenceState.ARMED
	if event is SilenceEvent.CANCEL:
		return SilenceState.IDLE
	if event is SilenceEvent.FIRE:
		return SilenceState.FIRED
	if event is SilenceEvent.ELAPSE:
		# A stale timer elapsing outside Armed changes nothing
		return SilenceState.FIRED if state is SilenceState.ARMED else state
	raise ValueError(f"unknown event {event!r}")


class TimerHandle(Protocol):
	def cancel(self) -> None: ...


class Scheduler(Protocol):
	def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
	"""Scheduler backed by the running asyncio event loop."""

	def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
		self._loop = loop

	def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
		loop = self._loop or asyncio.get_running_loop()
		return loop.call_later(delay, callback)


class SilenceDetector:
	def __init__(self, scheduler: Scheduler, window_seconds: float, on_fire: Callable[[], None]) -> None:
		self._scheduler = scheduler
		self.window_seconds = window_seconds
		self._on_fire = on_fire
		self._handle: Optional[TimerHandle] = None
		# Bumped on every arm/cancel/fire so a callback from a superseded
		# timer can recognise itself and do nothing
		self._generation = 0
		self.state = SilenceState.IDLE

	def _transition(self, event: SilenceEvent) -> None:
		self.state = next_state(self.state, event)

	def _cancel_handle(self) -> None:
		if self._handle is not None:
			self._handle.cancel()
			self._handle = None

	def arm(self) -> None:
		self._cancel_handle()
		self._generation += 1
		generation = self._generation
		self._handle = self._scheduler.call_later(self.window_seconds, lambda: self._elapsed(generation))
		self._transition(SilenceEvent.ARM)

	def cancel(self) -> None:
		self._cancel_handle()
		self._generation += 1
		self._transition(SilenceEvent.CANCEL)

	def fire_now(self) -> None:
		self._cancel_handle()
		self._generation += 1
		self._transition(SilenceEvent.FIRE)
		self._on_fire()

	def _elapsed(self, generation: int) -> None:
		if generation != self._generation or self.state is not SilenceState.ARMED:
			return
		self._handle = None
		self._transition(SilenceEvent.ELAPSE)
		self._on_fire()

	@property
	def armed(self) -> bool:
		return self.state is SilenceState.ARMED
