"""
Event transport port interface.

This module defines the protocol for the message-oriented duplex channel
that carries JSON change-event frames between clients.
"""

from typing import AsyncIterator, Protocol

class EventTransportPort(Protocol):
    """이벤트 전송 포트 인터페이스"""

    async def open(self, endpoint: str) -> None:
        """
        엔드포인트에 연결합니다.

        Raises:
            연결 실패 시 전송 계층 예외
        """
        ...

    async def close(self) -> None:
        """연결을 닫습니다. 이미 닫혀 있어도 안전해야 합니다."""
        ...

    async def send(self, frame: bytes) -> None:
        """
        프레임을 전송합니다.

        Raises:
            TransportUnavailable: 연결이 없을 때
        """
        ...

    def frames(self) -> AsyncIterator[bytes]:
        """
        수신 프레임을 비동기적으로 반환합니다. 연결이 끊기면 종료되거나 예외를 냅니다.

        Yields:
            원시 프레임 바이트
        """
        ...
