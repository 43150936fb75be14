from __future__ import annotations
import asyncio
from typing import Awaitable, Callable, List

from loguru import logger

from .protocol import OutboundEvent


_CLOSE = object()


class OutboundChannel:
	"""Ordered outbound event queue for one connection.

	Producers call emit() without awaiting; a single writer task drains the
	queue onto the transport with pump(). Tests read events with drain().
	"""

	def __init__(self) -> None:
		self._queue: asyncio.Queue = asyncio.Queue()
		self._closed = False

	@property
	def closed(self) -> bool:
		return self._closed

	def emit(self, event: OutboundEvent) -> None:
		if self._closed:
			logger.debug("Dropping {} event for closed connection", event.type)
			return
		self._queue.put_nowait(event)

	def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		self._queue.put_nowait(_CLOSE)

	async def pump(self, send: Callable[[str], Awaitable[None]]) -> None:
		while True:
			item = await self._queue.get()
			if item is _CLOSE:
				return
			await send(item.to_json())

	def drain(self) -> List[OutboundEvent]:
		events: List[OutboundEvent] = []
		while True:
			try:
				item = self._queue.get_nowait()
			except asyncio.QueueEmpty:
				return events
			if item is not _CLOSE:
				events.append(item)
