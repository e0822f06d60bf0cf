"""
테스트 설정 및 픽스처

이 모듈은 pytest 설정과 공통 픽스처를 제공합니다.
"""

import asyncio
from typing import AsyncIterator, List, Optional

import aiohttp
import pytest
from unittest.mock import AsyncMock, Mock

from fencesync.core.errors import TransportUnavailable
from fencesync.core.models import Perimeter
from fencesync.settings import Settings


class FakeTransport:
    """메모리 안에서 동작하는 이벤트 전송 대역"""

    def __init__(self, fail_open: bool = False):
        self.fail_open = fail_open
        self.fail_send = False
        self.open_calls: List[str] = []
        self.close_calls = 0
        self.sent: List[bytes] = []
        self.is_open = False
        self._inbox: Optional[asyncio.Queue] = None

    async def open(self, endpoint: str) -> None:
        self.open_calls.append(endpoint)
        if self.fail_open:
            raise ConnectionRefusedError("broker unreachable")
        self._inbox = asyncio.Queue()
        self.is_open = True

    async def close(self) -> None:
        self.close_calls += 1
        self.is_open = False
        if self._inbox is not None:
            self._inbox.put_nowait(None)

    async def send(self, frame: bytes) -> None:
        if not self.is_open or self.fail_send:
            raise TransportUnavailable("not connected")
        self.sent.append(frame)

    async def frames(self) -> AsyncIterator[bytes]:
        inbox = self._inbox
        while inbox is not None:
            frame = await inbox.get()
            if frame is None:
                return
            yield frame

    def deliver(self, frame: bytes) -> None:
        """원격 클라이언트가 보낸 프레임을 흉내냅니다."""
        self._inbox.put_nowait(frame)

    def drop(self) -> None:
        """브로커 쪽에서 연결이 끊긴 상황을 흉내냅니다."""
        self.is_open = False
        self._inbox.put_nowait(None)


class FakeResponse:
    """aiohttp 응답 컨텍스트 매니저 대역"""

    def __init__(self, status: int = 200, body=None):
        self.status = status
        self.body = body

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise aiohttp.ClientResponseError(Mock(), (), status=self.status, message="error")

    async def json(self):
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


@pytest.fixture
def make_response():
    """aiohttp 응답 대역 팩토리"""
    return FakeResponse


@pytest.fixture
def make_transport():
    """옵션을 지정해 전송 대역을 만드는 팩토리"""
    return FakeTransport


@pytest.fixture
def fake_transport(make_transport):
    """테스트용 전송 대역"""
    return make_transport()


@pytest.fixture
def sample_settings():
    """테스트용 설정"""
    settings = Settings()
    settings.observability.service_name = "test-service"
    settings.observability.build_version = "1.0.0"
    settings.observability.log_level = "INFO"
    settings.observability.http_port = 8080
    return settings


@pytest.fixture
def mock_store():
    """테스트용 원격 저장소"""
    return AsyncMock()


@pytest.fixture
def sao_paulo_square():
    """상파울루 부근 사각형 (저장 순서, 열린 링)"""
    return [
        [-23.55, -46.63],
        [-23.55, -46.62],
        [-23.56, -46.62],
        [-23.56, -46.63],
    ]


@pytest.fixture
def sample_perimeter(sao_paulo_square):
    """테스트용 퍼리미터"""
    return Perimeter(id=7, fence_id=3, name="Yard", type="polygon", coordinates=sao_paulo_square)


# pytest 설정
def pytest_configure(config):
    """pytest 설정"""
    config.addinivalue_line(
        "markers", "slow: 느린 테스트 마커"
    )
    config.addinivalue_line(
        "markers", "integration: 통합 테스트 마커"
    )


def pytest_collection_modifyitems(config, items):
    """테스트 아이템 수정"""
    for item in items:
        # 느린 테스트 마커 추가
        if "performance" in item.name or "stress" in item.name:
            item.add_marker(pytest.mark.slow)

        # 통합 테스트 마커 추가
        if "integration" in item.name:
            item.add_marker(pytest.mark.integration)
