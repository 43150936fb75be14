from __future__ import annotations
import asyncio
import contextlib

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from loguru import logger
from starlette.websockets import WebSocketState

from ..relay.channel import OutboundChannel

router = APIRouter(tags=["relay"])


async def _serve(websocket: WebSocket) -> None:
	services = websocket.app.state.services
	await websocket.accept()
	channel = OutboundChannel()
	connection = services.relay.connect(channel)
	writer = asyncio.create_task(channel.pump(websocket.send_text))
	logger.info("New WebSocket connection established")
	try:
		while True:
			message = await websocket.receive()
			if message["type"] == "websocket.disconnect":
				break
			# Binary frames carry the same JSON as text frames
			raw = message.get("text")
			if raw is None:
				raw = message.get("bytes") or b""
			await connection.handle_raw(raw)
	except WebSocketDisconnect:
		pass
	except Exception:
		# Only this connection goes down; other sessions are untouched
		logger.exception("Relay connection failed")
		if websocket.client_state == WebSocketState.CONNECTED:
			with contextlib.suppress(Exception):
				await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
	finally:
		connection.close()
		channel.close()
		try:
			await writer
		except Exception as e:
			# Socket already gone; queued events are lost with it
			logger.debug("Writer stopped: {}", e)


@router.websocket("/websocket")
async def relay_socket(websocket: WebSocket):
	await _serve(websocket)


@router.websocket("/api/websocket")
async def relay_socket_api(websocket: WebSocket):
	await _serve(websocket)
