"""WebSocket gate connections with per-connection expiry timers."""
import asyncio
import contextlib
import time
from dataclasses import dataclass
import structlog
import orjson
from fastapi import WebSocket, WebSocketDisconnect
from ..crypto import TokenDecryptor, DecryptError
from ..services.gate import GateService
from ..session_models import EnterFailure

log = structlog.get_logger()

HEARTBEAT_TYPES = ("ping", "heartbeat")
EXPIRED_MESSAGE = "Your session has expired"


@dataclass(frozen=True)
class Inbound:
    """A text frame received from the client."""
    text: str


@dataclass(frozen=True)
class TimerFired:
    """The expiry timer with this id elapsed."""
    timer_id: int


@dataclass(frozen=True)
class Closed:
    """The connection is ending (client disconnect or server shutdown)."""
    reason: str = "client"


@dataclass(frozen=True)
class RateLimited:
    """Frames were dropped by the rate limiter since the last notice."""


class RateLimiter:
    """Simple rate limiter for WebSocket messages."""

    def __init__(self, max_messages: int = 60, window_seconds: int = 60):
        """
        Initialize rate limiter.

        Args:
            max_messages: Maximum messages allowed in window
            window_seconds: Time window in seconds
        """
        self.max_messages = max_messages
        self.window_seconds = window_seconds
        self._message_times: list[float] = []

    def check_limit(self) -> bool:
        """
        Check if rate limit is exceeded.

        Returns:
            True if within limit, False if exceeded
        """
        now = time.monotonic()
        cutoff = now - self.window_seconds

        self._message_times = [t for t in self._message_times if t > cutoff]

        if len(self._message_times) >= self.max_messages:
            return False

        self._message_times.append(now)
        return True

    def remaining(self) -> int:
        """Get number of remaining messages in current window."""
        cutoff = time.monotonic() - self.window_seconds
        recent = len([t for t in self._message_times if t > cutoff])
        return max(0, self.max_messages - recent)


class ExpiryTimer:
    """One-shot timer that posts TimerFired to its owner's inbox."""

    def __init__(self, timer_id: int, token: str, delay_seconds: float, inbox: asyncio.Queue):
        self.timer_id = timer_id
        self.token = token
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay_seconds, inbox.put_nowait, TimerFired(timer_id))

    def cancel(self):
        self._handle.cancel()


class GateConnection:
    """
    Actor owning one client connection and its expiry timer.

    Everything that can change the connection's state (client frames, timer
    firings, close requests) arrives as a message in the inbox and is handled
    one at a time by run().
    """

    def __init__(
        self,
        websocket: WebSocket,
        gate: GateService,
        decryptor: TokenDecryptor,
        metrics=None,
        rate_limiter: RateLimiter | None = None,
    ):
        self._ws = websocket
        self._gate = gate
        self._decryptor = decryptor
        self._metrics = metrics
        self._rate_limiter = rate_limiter
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._timer: ExpiryTimer | None = None
        self._timer_seq = 0
        self._throttle_notice_pending = False

    @property
    def has_timer(self) -> bool:
        return self._timer is not None

    def close(self, reason: str = "server"):
        """Ask the actor to stop; its timer is cancelled as it exits."""
        self._inbox.put_nowait(Closed(reason=reason))

    async def run(self):
        """Process inbox messages until the connection closes."""
        reader = asyncio.create_task(self._read_frames())
        closed_by = None
        try:
            while True:
                message = await self._inbox.get()
                if isinstance(message, Closed):
                    closed_by = message.reason
                    break
                if isinstance(message, TimerFired):
                    await self._on_timer(message)
                elif isinstance(message, RateLimited):
                    await self._on_rate_limited()
                else:
                    await self._on_frame(message.text)
        finally:
            self._cancel_timer()
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
            log.info("websocket.closed", reason=closed_by)

        if closed_by == "server":
            with contextlib.suppress(Exception):
                await self._ws.close(code=1001)

    async def _read_frames(self):
        try:
            while True:
                text = await self._ws.receive_text()
                if self._rate_limiter and not self._rate_limiter.check_limit():
                    # Over-limit frames never reach the inbox
                    if not self._throttle_notice_pending:
                        self._throttle_notice_pending = True
                        await self._inbox.put(RateLimited())
                    continue
                await self._inbox.put(Inbound(text))
        except WebSocketDisconnect as e:
            await self._inbox.put(Closed(reason=f"client:{e.code}"))
        except (KeyError, RuntimeError) as e:
            # Binary frame or a socket that is already gone
            log.warning("websocket.receive_failed", error=str(e))
            await self._inbox.put(Closed(reason="receive_error"))

    async def _send(self, payload: dict):
        await self._ws.send_text(orjson.dumps(payload).decode())

    async def _on_rate_limited(self):
        self._throttle_notice_pending = False
        log.warning("websocket.rate_limited")
        await self._send({
            "type": "error",
            "message": "Rate limit exceeded",
            "retry_after": self._rate_limiter.window_seconds
        })

    async def _on_frame(self, text: str):
        try:
            data = orjson.loads(text)
        except orjson.JSONDecodeError:
            await self._send({"type": "error", "message": "Invalid JSON"})
            return

        msg_type = data.get("type") if isinstance(data, dict) else None

        try:
            if msg_type in HEARTBEAT_TYPES:
                await self._send({"type": "ping", "timestamp": self._gate.now()})
            elif msg_type == "enter":
                await self._enter(data.get("token"))
            else:
                await self._send({"type": "error", "message": "Unknown message type"})
        except WebSocketDisconnect:
            raise
        except Exception as e:
            log.error("websocket.message_failed", error=str(e), exc_info=True)
            await self._send({"type": "error", "message": "Internal error"})

    async def _enter(self, wire_token):
        if not isinstance(wire_token, str) or not wire_token:
            await self._send({"type": "error", "message": "Missing token", "code": "invalid_token"})
            return

        try:
            token = self._decryptor.decrypt(wire_token)
        except DecryptError as e:
            log.info("gate.decrypt_failed", code=e.code)
            if self._metrics:
                self._metrics.record_decrypt_failure(e.code)
            await self._send({"type": "error", "message": "Invalid token", "code": e.code})
            return

        decision = await self._gate.enter(token)

        if isinstance(decision, EnterFailure):
            if self._metrics:
                self._metrics.record_enter(decision.code)
            await self._send(decision.model_dump())
            return

        if self._metrics:
            self._metrics.record_enter("replay" if decision.already_entered else "success")

        # Echo the token as the client presented it
        payload = decision.model_dump()
        payload["token"] = wire_token
        await self._send(payload)
        self._arm_timer(wire_token, decision.expired_time)

    def _arm_timer(self, token: str, expired_time: int):
        delay_ms = expired_time - self._gate.now()
        if delay_ms <= 0:
            return
        self._cancel_timer()
        self._timer_seq += 1
        self._timer = ExpiryTimer(self._timer_seq, token, delay_ms / 1000, self._inbox)
        log.debug("gate.timer_armed", timer_id=self._timer_seq, delay_ms=delay_ms)

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _on_timer(self, fired: TimerFired):
        if self._timer is None or fired.timer_id != self._timer.timer_id:
            # Superseded or already cancelled
            return
        token = self._timer.token
        self._timer = None
        await self._send({
            "type": "expired",
            "token": token,
            "message": EXPIRED_MESSAGE,
            "expired_at": self._gate.now()
        })
        if self._metrics:
            self._metrics.record_expiry_notification()
        log.info("gate.expired_notified")


class ConnectionManager:
    """
    Tracks live gate connections.

    Features:
    - Connection count (exported as a gauge)
    - Closing every connection on shutdown so no timer outlives the app
    """

    def __init__(self, metrics=None):
        """Initialize connection manager."""
        self._connections: set[GateConnection] = set()
        self._metrics = metrics

    async def connect(self, websocket: WebSocket):
        """Accept a new WebSocket connection."""
        await websocket.accept()

    def add(self, connection: GateConnection):
        self._connections.add(connection)
        if self._metrics:
            self._metrics.ws_connections_active.set(len(self._connections))
        log.info("websocket.connected", total_connections=len(self._connections))

    def discard(self, connection: GateConnection):
        self._connections.discard(connection)
        if self._metrics:
            self._metrics.ws_connections_active.set(len(self._connections))
        log.info("websocket.disconnected", total_connections=len(self._connections))

    def close_all(self):
        """Ask every connection to close."""
        for connection in list(self._connections):
            connection.close("server")

    @property
    def connection_count(self) -> int:
        """Get number of active connections."""
        return len(self._connections)


async def handle_gate_websocket(
    websocket: WebSocket,
    manager: ConnectionManager,
    gate: GateService,
    decryptor: TokenDecryptor,
    metrics=None,
    rate_limit_messages: int = 60,
    rate_limit_window: int = 60
):
    """
    Serve one gate WebSocket until it closes.

    Args:
        websocket: WebSocket connection
        manager: Registry of live connections
        gate: Gate service
        decryptor: Token decryptor
        metrics: Optional Metrics instance
        rate_limit_messages: Max messages per window
        rate_limit_window: Rate limit window in seconds
    """
    await manager.connect(websocket)
    connection = GateConnection(
        websocket,
        gate,
        decryptor,
        metrics=metrics,
        rate_limiter=RateLimiter(rate_limit_messages, rate_limit_window),
    )
    manager.add(connection)

    try:
        await connection.run()
    except WebSocketDisconnect:
        log.info("websocket.client_disconnected")
    except Exception as e:
        log.error("websocket.error", error=str(e), exc_info=True)
    finally:
        manager.discard(connection)
