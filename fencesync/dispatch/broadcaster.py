"""
Change broadcaster for FenceSync.

Best-effort fan-out of change events across connected clients. When the
transport is unreachable, send() degrades to dispatching the event to local
listeners, so callers always see their own events. Reconnection uses a fixed
interval and a finite attempt ceiling, after which reconnect_failed is
dispatched once and retrying stops until connect() is called again.
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from fencesync.core import events
from fencesync.core.errors import InvalidEventPayload, TransportUnavailable
from fencesync.core.events import ChangeEvent, build_event
from fencesync.observability import metrics
from fencesync.observability.logging_setup import get_logger
from fencesync.ports.transport import EventTransportPort

log = get_logger("fencesync.broadcaster")

Listener = Callable[[Any], Any]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class _Registration:
    __slots__ = ("event_type", "listener")

    def __init__(self, event_type: str, listener: Listener):
        self.event_type = event_type
        self.listener = listener


class Subscription:
    """on() 이 반환하는 구독 핸들. release() 는 자신의 등록만 해제하며 여러 번 호출해도 안전합니다."""

    def __init__(self, broadcaster: "ChangeBroadcaster", registration: _Registration):
        self._broadcaster = broadcaster
        self._registration: Optional[_Registration] = registration

    @property
    def active(self) -> bool:
        return self._registration is not None

    def release(self) -> None:
        if self._registration is not None:
            self._broadcaster._unregister(self._registration)
            self._registration = None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


class ChangeBroadcaster:
    """변경 이벤트 브로드캐스터"""

    def __init__(self,
                 transport: EventTransportPort,
                 *,
                 reconnect_interval: float = 5.0,
                 max_reconnect_attempts: int = 10):
        """
        초기화합니다.

        Args:
            transport: 이벤트 전송 어댑터
            reconnect_interval: 재연결 간격 (초, 고정)
            max_reconnect_attempts: 최대 연속 재연결 시도 횟수
        """
        self.transport = transport
        self.reconnect_interval = reconnect_interval
        self.max_reconnect_attempts = max_reconnect_attempts

        self._state = ConnectionState.DISCONNECTED
        self._endpoint: Optional[str] = None
        self._attempts = 0
        self._listeners: Dict[str, List[_Registration]] = {}
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._listener_tasks: set = set()
        # connect/disconnect 마다 증가. 이전 세대의 open 결과는 폐기된다
        self._generation = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def endpoint(self) -> Optional[str]:
        return self._endpoint

    # ---- 연결 수명주기 ----
    async def connect(self, endpoint: str) -> bool:
        """
        엔드포인트에 연결합니다. 기존 연결과 예약된 재연결은 먼저 정리합니다.

        Returns:
            연결 성공 여부 (실패 시 재연결이 예약됨)
        """
        self._generation += 1
        await self._cancel_reconnect()
        await self._teardown()
        self._attempts = 0
        self._endpoint = endpoint
        return await self._open()

    async def disconnect(self) -> None:
        """전송을 닫고 재연결을 중단합니다. 이미 끊긴 상태에서도 안전합니다."""
        was_connected = self.connected
        self._generation += 1
        await self._cancel_reconnect()
        await self._teardown()
        self._endpoint = None
        if was_connected:
            log.info("브로드캐스터 연결 종료됨")
            self._dispatch(ChangeEvent(events.DISCONNECT))

    async def _open(self) -> bool:
        generation = self._generation
        self._state = ConnectionState.CONNECTING
        try:
            await self.transport.open(self._endpoint)
        except asyncio.CancelledError:
            if generation == self._generation:
                self._state = ConnectionState.DISCONNECTED
            raise
        except Exception as e:
            if generation != self._generation:
                log.debug(f"이전 세대의 연결 실패 무시: {e}")
                return False
            self._state = ConnectionState.DISCONNECTED
            metrics.broadcaster_connected.set(0)
            log.warning(f"전송 연결 실패 (로컬 모드로 동작): {self._endpoint} error:{e}")
            self._dispatch(build_event(events.ERROR, {"message": str(e)}))
            self._schedule_reconnect()
            return False

        if generation != self._generation:
            # 대기 중에 disconnect()/connect() 가 호출됨
            log.info("취소된 연결 결과 폐기")
            try:
                await self.transport.close()
            except Exception as e:
                log.debug(f"전송 종료 중 오류 무시: {e}")
            return False

        self._state = ConnectionState.CONNECTED
        self._attempts = 0
        metrics.broadcaster_connected.set(1)
        log.info(f"전송 연결됨: {self._endpoint}")
        self._reader_task = asyncio.create_task(self._read_loop())
        self._dispatch(ChangeEvent(events.CONNECT))
        return True

    async def _teardown(self) -> None:
        """리더를 멈추고 전송을 닫습니다."""
        reader, self._reader_task = self._reader_task, None
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        self._state = ConnectionState.DISCONNECTED
        metrics.broadcaster_connected.set(0)
        try:
            await self.transport.close()
        except Exception as e:
            log.debug(f"전송 종료 중 오류 무시: {e}")

    async def _cancel_reconnect(self) -> None:
        """예약된 재연결을 취소하고, 진행 중인 open() 이 끝날 때까지 기다립니다."""
        task, self._reconnect_task = self._reconnect_task, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _schedule_reconnect(self) -> None:
        """재연결을 정확히 한 번 예약합니다. 한도를 넘으면 reconnect_failed 를 보내고 멈춥니다."""
        if self._endpoint is None:
            return
        pending = self._reconnect_task
        if pending is not None and not pending.done() and pending is not asyncio.current_task():
            return
        if self._attempts >= self.max_reconnect_attempts:
            metrics.reconnect_failures.inc()
            log.warning("재연결 한도 초과. 로컬 모드로 동작합니다.")
            self._dispatch(ChangeEvent(events.RECONNECT_FAILED))
            return
        self._attempts += 1
        self._reconnect_task = asyncio.create_task(self._reconnect_after_delay(self._attempts))

    async def _reconnect_after_delay(self, attempt: int) -> None:
        await asyncio.sleep(self.reconnect_interval)
        if self._endpoint is None:
            return
        metrics.reconnects.inc()
        log.info(f"재연결 시도 {attempt}/{self.max_reconnect_attempts}")
        # open() 이 끝날 때까지 핸들 유지
        await self._open()
        if self._reconnect_task is asyncio.current_task():
            self._reconnect_task = None

    async def _read_loop(self) -> None:
        try:
            async for frame in self.transport.frames():
                self._handle_frame(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning(f"전송 수신 오류: {e}")

        # 여기까지 왔다면 연결이 끊긴 것
        if self._reader_task is asyncio.current_task():
            self._reader_task = None
            await self._teardown()
            log.warning("전송 연결 끊김")
            self._dispatch(ChangeEvent(events.DISCONNECT))
            self._schedule_reconnect()

    def _handle_frame(self, frame: bytes) -> None:
        try:
            event = ChangeEvent.from_frame(frame)
        except InvalidEventPayload as e:
            metrics.events_dropped.inc()
            log.warning(f"잘못된 프레임 무시: {e}")
            return
        metrics.events_received.labels(type=event.type).inc()
        self._dispatch(event)

    # ---- 송신 ----
    async def send(self, event_type: str, payload: Any = None) -> bool:
        """
        변경 이벤트를 전송합니다.

        연결되어 있지 않거나 전송이 실패하면 예외 대신 로컬 리스너에게 동기적으로
        디스패치하고 False 를 반환합니다. False 는 오류가 아닙니다.

        Raises:
            InvalidEventPayload: 이벤트 타입이나 페이로드가 잘못된 경우
        """
        event = build_event(event_type, payload)

        if self.connected:
            try:
                await self.transport.send(event.to_frame())
                metrics.events_sent.labels(type=event.type).inc()
                return True
            except TransportUnavailable as e:
                log.warning(f"전송 불가, 로컬 디스패치로 대체: {event.type} error:{e}")
            except Exception as e:
                log.warning(f"전송 실패, 로컬 디스패치로 대체: {event.type} error:{e}")
        else:
            log.warning(f"연결 안 됨. 이벤트 '{event.type}' 로컬 디스패치")

        metrics.events_local_fallback.labels(type=event.type).inc()
        self._dispatch(event)
        return False

    # ---- 리스너 ----
    def on(self, event_type: str, listener: Listener) -> Subscription:
        """리스너를 등록하고 구독 핸들을 반환합니다."""
        registration = _Registration(event_type, listener)
        self._listeners.setdefault(event_type, []).append(registration)
        return Subscription(self, registration)

    def off(self, event_type: str, listener: Listener) -> None:
        """일치하는 등록을 최대 하나 제거합니다."""
        for registration in self._listeners.get(event_type, []):
            if registration.listener == listener:
                self._unregister(registration)
                return

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, []))

    def _unregister(self, registration: _Registration) -> None:
        registrations = self._listeners.get(registration.event_type, [])
        for i, r in enumerate(registrations):
            if r is registration:
                del registrations[i]
                break
        if not registrations:
            self._listeners.pop(registration.event_type, None)

    def _dispatch(self, event: ChangeEvent) -> None:
        for registration in list(self._listeners.get(event.type, [])):
            try:
                result = registration.listener(event.payload)
            except Exception:
                metrics.listener_errors.labels(type=event.type).inc()
                log.opt(exception=True).error(f"리스너 실행 오류: {event.type}")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._listener_tasks.add(task)
                task.add_done_callback(self._listener_done(event.type))

    def _listener_done(self, event_type: str):
        def _done(task: asyncio.Task) -> None:
            self._listener_tasks.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                metrics.listener_errors.labels(type=event_type).inc()
                log.opt(exception=exc).error(f"비동기 리스너 실행 오류: {event_type}")
        return _done
