from __future__ import annotations
from typing import List


class UtteranceBuffer:
	"""Raw audio chunks received since the last flush, in arrival order."""

	def __init__(self) -> None:
		self._chunks: List[bytes] = []
		self._size = 0

	def append(self, chunk: bytes) -> None:
		self._chunks.append(bytes(chunk))
		self._size += len(chunk)

	def drain_all(self) -> bytes:
		# No await in here, so concurrent appends on the same loop cannot interleave
		data = b"".join(self._chunks)
		self._chunks = []
		self._size = 0
		return data

	def clear(self) -> None:
		self._chunks = []
		self._size = 0

	@property
	def size(self) -> int:
		return self._size

	def __len__(self) -> int:
		return len(self._chunks)

	def __bool__(self) -> bool:
		return self._size > 0
