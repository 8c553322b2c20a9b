from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from mohoot.messaging.encoder import DecodeError, decode
from mohoot.messaging.protocol import ConnectionProtocol
from mohoot.messaging.types import ErrorMessage, SessionErrorCode
from mohoot.server.rate_limit import TokenBucket
from shared.validators import is_valid_pin

logger = structlog.get_logger()

if TYPE_CHECKING:
    from mohoot.messaging.router import MessageRouter

# A player sends a handful of messages per question; hosts a few more.
_RATE_LIMIT_RATE = 10.0
_RATE_LIMIT_BURST = 30

# Disconnect after this many consecutive decode errors
_MAX_DECODE_ERRORS = 5

INVALID_PIN_CLOSE_CODE = 4000
TOO_MANY_DECODE_ERRORS_CLOSE_CODE = 4004


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, pin: str, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._pin = pin
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def pin(self) -> str:
        return self._pin

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send_bytes(data)
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def receive_bytes(self) -> bytes:
        try:
            return await self._websocket.receive_bytes()
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


class _InboundFrames:
    """Decodes client frames, throttling each connection and counting decode-error strikes."""

    def __init__(self, connection: WebSocketConnection) -> None:
        self._connection = connection
        self._bucket = TokenBucket(rate=_RATE_LIMIT_RATE, burst=_RATE_LIMIT_BURST)
        self._strikes = 0

    @property
    def exhausted(self) -> bool:
        return self._strikes >= _MAX_DECODE_ERRORS

    async def next_message(self) -> dict[str, Any] | None:
        """Wait for one frame. None means it was answered with an error and dropped."""
        raw = await self._connection.receive_bytes()
        try:
            message = decode(raw)
        except DecodeError as e:
            self._strikes += 1
            logger.warning("undecodable frame", error=str(e), strikes=self._strikes)
            await self._reject(SessionErrorCode.INVALID_MESSAGE, str(e))
            return None
        self._strikes = 0
        if not self._bucket.consume():
            await self._reject(SessionErrorCode.RATE_LIMITED, "Too many messages")
            return None
        return message

    async def _reject(self, code: SessionErrorCode, text: str) -> None:
        await self._connection.send_message(ErrorMessage(code=code, message=text).model_dump())


async def websocket_endpoint(websocket: WebSocket, router: MessageRouter) -> None:
    pin = websocket.path_params["pin"]
    if not is_valid_pin(pin):
        await websocket.close(code=INVALID_PIN_CLOSE_CODE, reason="invalid_pin")
        return

    await websocket.accept()
    connection = WebSocketConnection(websocket, pin=pin)
    structlog.contextvars.bind_contextvars(pin=pin, connection_id=connection.connection_id)
    logger.info("websocket connected")

    inbound = _InboundFrames(connection)
    try:
        while not inbound.exhausted:
            message = await inbound.next_message()
            if message is not None:
                await router.handle_message(connection, message)
        logger.info("too many decode errors, disconnecting")
        await connection.close(code=TOO_MANY_DECODE_ERRORS_CLOSE_CODE, reason="too_many_decode_errors")
    except (WebSocketDisconnect, RuntimeError, ConnectionError):
        pass
    finally:
        logger.info("websocket disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()
