"""
ChangeBroadcaster 단위 테스트

이 모듈은 로컬 디스패치 대체, 재연결 한도, 리스너 격리와
구독 핸들 동작을 메모리 전송 대역으로 테스트합니다.
"""

import asyncio
import json

import pytest

from fencesync.core import events
from fencesync.core.errors import InvalidEventPayload
from fencesync.core.events import FenceRef, Notice, PerimeterRef
from fencesync.dispatch.broadcaster import ChangeBroadcaster, ConnectionState

ENDPOINT = "mqtt://broker.test:1883/fencesync/events"


async def _until(condition, timeout: float = 1.0):
    """조건이 참이 될 때까지 이벤트 루프를 돌립니다."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
async def broadcaster(fake_transport):
    """테스트용 브로드캐스터"""
    b = ChangeBroadcaster(fake_transport, reconnect_interval=0.01, max_reconnect_attempts=3)
    yield b
    await b.disconnect()


class TestLocalFallback:
    """연결 없는 송신 테스트"""

    @pytest.mark.asyncio
    async def test_send_without_connection_dispatches_locally(self, broadcaster, fake_transport):
        """연결 없으면 로컬 리스너에 전달하고 False"""
        received = []
        broadcaster.on(events.PERIMETER_UPDATED, received.append)

        result = await broadcaster.send(events.PERIMETER_UPDATED, {"perimeterId": 1})

        assert result is False
        assert received == [PerimeterRef(perimeter_id=1)]
        assert fake_transport.sent == []

    @pytest.mark.asyncio
    async def test_send_failure_while_connected_falls_back(self, broadcaster, fake_transport):
        """연결 중 전송 실패 시 로컬 디스패치"""
        received = []
        broadcaster.on(events.FENCE_UPDATED, received.append)
        await broadcaster.connect(ENDPOINT)
        fake_transport.fail_send = True

        result = await broadcaster.send(events.FENCE_UPDATED, {"fenceId": 2})

        assert result is False
        assert received == [FenceRef(fence_id=2)]

    @pytest.mark.asyncio
    async def test_invalid_payload_raises(self, broadcaster):
        """잘못된 페이로드는 호출자에게 예외"""
        with pytest.raises(InvalidEventPayload):
            await broadcaster.send(events.PERIMETER_UPDATED, {"fenceId": 1})

        with pytest.raises(InvalidEventPayload):
            await broadcaster.send("made_up_event", {})


class TestConnection:
    """연결 수명주기 테스트"""

    @pytest.mark.asyncio
    async def test_connected_send_goes_to_transport(self, broadcaster, fake_transport):
        """연결되면 전송으로 송신하고 True"""
        connected = []
        broadcaster.on(events.CONNECT, connected.append)

        assert await broadcaster.connect(ENDPOINT) is True
        result = await broadcaster.send(events.PERIMETER_DELETED, {"perimeterId": 4})

        assert result is True
        assert broadcaster.state is ConnectionState.CONNECTED
        assert broadcaster.endpoint == ENDPOINT
        assert connected == [None]
        assert json.loads(fake_transport.sent[0]) == {
            "type": "perimeter_deleted",
            "payload": {"perimeterId": 4},
        }

    @pytest.mark.asyncio
    async def test_reconnect_failed_dispatched_once(self, make_transport):
        """재연결 한도 도달 시 reconnect_failed 한 번"""
        transport = make_transport(fail_open=True)
        b = ChangeBroadcaster(transport, reconnect_interval=0.01, max_reconnect_attempts=3)
        failed, errors = [], []
        b.on(events.RECONNECT_FAILED, failed.append)
        b.on(events.ERROR, errors.append)

        assert await b.connect(ENDPOINT) is False
        await _until(lambda: failed)
        await asyncio.sleep(0.05)

        assert failed == [None]
        assert len(transport.open_calls) == 1 + 3
        assert len(errors) == 4
        assert isinstance(errors[0], Notice)
        assert b.state is ConnectionState.DISCONNECTED
        await b.disconnect()

    @pytest.mark.asyncio
    async def test_manual_connect_resets_attempts(self, make_transport):
        """수동 connect 는 재시도 횟수를 초기화"""
        transport = make_transport(fail_open=True)
        b = ChangeBroadcaster(transport, reconnect_interval=0.01, max_reconnect_attempts=2)
        failed = []
        b.on(events.RECONNECT_FAILED, failed.append)
        await b.connect(ENDPOINT)
        await _until(lambda: failed)

        transport.fail_open = False
        assert await b.connect(ENDPOINT) is True

        assert b.reconnect_attempts == 0
        assert b.connected
        await b.disconnect()

    @pytest.mark.asyncio
    async def test_dropped_connection_reconnects(self, broadcaster, fake_transport):
        """끊긴 연결은 고정 간격 후 재연결"""
        connects, disconnects = [], []
        broadcaster.on(events.CONNECT, connects.append)
        broadcaster.on(events.DISCONNECT, disconnects.append)
        await broadcaster.connect(ENDPOINT)

        fake_transport.drop()
        await _until(lambda: len(connects) == 2)

        assert disconnects == [None]
        assert len(fake_transport.open_calls) == 2
        assert broadcaster.connected

    @pytest.mark.asyncio
    async def test_disconnect_stops_reconnecting(self, make_transport):
        """disconnect 후에는 재연결하지 않음"""
        transport = make_transport(fail_open=True)
        b = ChangeBroadcaster(transport, reconnect_interval=0.02, max_reconnect_attempts=5)

        await b.connect(ENDPOINT)
        await b.disconnect()
        await asyncio.sleep(0.1)

        assert len(transport.open_calls) == 1

    @pytest.fixture
    def gated_transport(self, make_transport):
        """첫 open 은 실패하고, 이후 open 은 gate 가 열릴 때까지 대기하는 전송"""
        class GatedTransport(make_transport):
            def __init__(self):
                super().__init__(fail_open=True)
                self.gate = asyncio.Event()
                self.waiting = False

            async def open(self, endpoint):
                if self.fail_open:
                    return await super().open(endpoint)
                self.waiting = True
                try:
                    await self.gate.wait()
                finally:
                    self.waiting = False
                await super().open(endpoint)

        return GatedTransport()

    @pytest.mark.asyncio
    async def test_disconnect_during_pending_reconnect_open(self, gated_transport):
        """재연결 open 대기 중 disconnect 하면 연결되지 않음"""
        b = ChangeBroadcaster(gated_transport, reconnect_interval=0.01, max_reconnect_attempts=5)
        connects = []
        b.on(events.CONNECT, connects.append)
        assert await b.connect(ENDPOINT) is False
        gated_transport.fail_open = False
        await _until(lambda: gated_transport.waiting)

        await b.disconnect()
        gated_transport.gate.set()
        await asyncio.sleep(0.05)

        assert b.state is ConnectionState.DISCONNECTED
        assert b.endpoint is None
        assert connects == []
        assert gated_transport.is_open is False

    @pytest.mark.asyncio
    async def test_connect_during_pending_reconnect_open(self, gated_transport):
        """재연결 open 대기 중 connect 해도 리더는 하나"""
        b = ChangeBroadcaster(gated_transport, reconnect_interval=0.01, max_reconnect_attempts=5)
        received = []
        b.on(events.FENCE_UPDATED, received.append)
        assert await b.connect(ENDPOINT) is False
        gated_transport.fail_open = False
        await _until(lambda: gated_transport.waiting)

        gated_transport.gate.set()
        assert await b.connect(ENDPOINT) is True
        await asyncio.sleep(0.05)

        gated_transport.deliver(b'{"type": "fence_updated", "payload": {"fenceId": 9}}')
        await _until(lambda: received)
        await asyncio.sleep(0.02)

        assert received == [FenceRef(fence_id=9)]
        assert b.connected
        await b.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_when_never_connected(self, broadcaster):
        """연결한 적 없어도 disconnect 는 안전"""
        disconnects = []
        broadcaster.on(events.DISCONNECT, disconnects.append)

        await broadcaster.disconnect()

        assert disconnects == []
        assert broadcaster.state is ConnectionState.DISCONNECTED


class TestIncomingFrames:
    """수신 프레임 테스트"""

    @pytest.mark.asyncio
    async def test_remote_event_reaches_listener(self, broadcaster, fake_transport):
        """원격 이벤트 전달"""
        received = []
        broadcaster.on(events.FENCE_UPDATED, received.append)
        await broadcaster.connect(ENDPOINT)

        fake_transport.deliver(b'{"type": "fence_updated", "payload": {"fenceId": 3}}')
        await _until(lambda: received)

        assert received == [FenceRef(fence_id=3)]

    @pytest.mark.asyncio
    async def test_invalid_frame_is_dropped(self, broadcaster, fake_transport):
        """잘못된 프레임은 버리고 계속 수신"""
        received = []
        broadcaster.on(events.FENCE_DELETED, received.append)
        await broadcaster.connect(ENDPOINT)

        fake_transport.deliver(b"garbage")
        fake_transport.deliver(b'{"type": "fence_deleted", "payload": {"fenceId": "x"}}')
        fake_transport.deliver(b'{"type": "fence_deleted", "payload": {"fenceId": 8}}')
        await _until(lambda: received)

        assert received == [FenceRef(fence_id=8)]
        assert broadcaster.connected


class TestListeners:
    """리스너 등록/해제 테스트"""

    @pytest.mark.asyncio
    async def test_listener_exception_is_isolated(self, broadcaster):
        """한 리스너의 예외가 다른 리스너를 막지 않음"""
        received = []

        def broken(_payload):
            raise RuntimeError("listener bug")

        broadcaster.on(events.FENCE_CREATED, broken)
        broadcaster.on(events.FENCE_CREATED, received.append)

        result = await broadcaster.send(events.FENCE_CREATED, {"fenceId": 1})

        assert result is False
        assert received == [FenceRef(fence_id=1)]

    @pytest.mark.asyncio
    async def test_async_listener_is_scheduled(self, broadcaster):
        """코루틴 리스너는 태스크로 실행"""
        received = []

        async def listener(payload):
            received.append(payload)

        async def broken(_payload):
            raise RuntimeError("async listener bug")

        broadcaster.on(events.FENCE_CREATED, broken)
        broadcaster.on(events.FENCE_CREATED, listener)

        await broadcaster.send(events.FENCE_CREATED, {"fenceId": 6})
        await _until(lambda: received)

        assert received == [FenceRef(fence_id=6)]

    @pytest.mark.asyncio
    async def test_subscription_release_is_idempotent(self, broadcaster):
        """구독 해제는 자기 등록만, 여러 번 호출해도 안전"""
        received = []
        first = broadcaster.on(events.FENCE_UPDATED, received.append)
        second = broadcaster.on(events.FENCE_UPDATED, received.append)

        first.release()
        first.release()

        assert first.active is False
        assert second.active is True
        assert broadcaster.listener_count(events.FENCE_UPDATED) == 1

        await broadcaster.send(events.FENCE_UPDATED, {"fenceId": 1})
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_subscription_context_manager(self, broadcaster):
        """with 블록 종료 시 해제"""
        with broadcaster.on(events.FENCE_UPDATED, lambda _: None):
            assert broadcaster.listener_count(events.FENCE_UPDATED) == 1

        assert broadcaster.listener_count(events.FENCE_UPDATED) == 0

    @pytest.mark.asyncio
    async def test_off_removes_one_registration(self, broadcaster):
        """off 는 일치하는 등록 하나만 제거"""
        def listener(_payload):
            pass

        broadcaster.on(events.FENCE_UPDATED, listener)
        broadcaster.on(events.FENCE_UPDATED, listener)

        broadcaster.off(events.FENCE_UPDATED, listener)
        assert broadcaster.listener_count(events.FENCE_UPDATED) == 1

        broadcaster.off(events.FENCE_UPDATED, listener)
        broadcaster.off(events.FENCE_UPDATED, listener)
        assert broadcaster.listener_count(events.FENCE_UPDATED) == 0
