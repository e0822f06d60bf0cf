import ssl
from contextlib import AsyncExitStack
from typing import AsyncIterator, Optional, Tuple
from urllib.parse import urlparse

from aiomqtt import Client, MqttError, Will

from fencesync.core.errors import TransportUnavailable
from fencesync.observability.logging_setup import get_logger

log = get_logger("fencesync.mqtt")

DEFAULT_PORT = 1883
DEFAULT_TLS_PORT = 8883


def parse_endpoint(endpoint: str) -> Tuple[str, int, str, bool]:
    """
    mqtt://host:port/topic 형식의 엔드포인트를 해석합니다.

    Returns:
        (호스트, 포트, 토픽, TLS 여부)
    """
    parsed = urlparse(endpoint)
    if parsed.scheme not in ("mqtt", "mqtts"):
        raise ValueError(f"지원하지 않는 엔드포인트 스킴: {endpoint}")
    tls = parsed.scheme == "mqtts"
    if not parsed.hostname:
        raise ValueError(f"엔드포인트에 호스트가 없습니다: {endpoint}")
    topic = parsed.path.lstrip("/")
    if not topic:
        raise ValueError(f"엔드포인트에 토픽이 없습니다: {endpoint}")
    port = parsed.port or (DEFAULT_TLS_PORT if tls else DEFAULT_PORT)
    return parsed.hostname, port, topic, tls


class MqttEventTransport:
    """MQTT 기반 변경 이벤트 전송 어댑터 (브로커가 모든 구독자에게 팬아웃)"""

    def __init__(
        self,
        *,
        username: str | None = None,
        password: str | None = None,
        tls: bool = False,
        client_id: str | None = None,
        keepalive: int = 30,
        qos: int = 1,
        lwt_topic: str | None = None,
        lwt_payload: str = "offline",
    ):
        self.username = username
        self.password = password
        self.tls = tls
        self.client_id = client_id
        self.keepalive = keepalive
        self.qos = qos
        self.lwt_topic = lwt_topic
        self.lwt_payload = lwt_payload

        self.client: Client | None = None
        self.topic: Optional[str] = None
        self._stack: Optional[AsyncExitStack] = None

    async def open(self, endpoint: str) -> None:
        """브로커에 연결하고 이벤트 토픽을 구독합니다."""
        await self.close()
        host, port, topic, tls = parse_endpoint(endpoint)

        tls_context = None
        if tls or self.tls:
            tls_context = ssl.create_default_context()

        will = None
        if self.lwt_topic:
            will = Will(
                topic=self.lwt_topic,
                payload=self.lwt_payload.encode("utf-8"),
                qos=1,
                retain=True,
            )

        client = Client(
            hostname=host,
            port=port,
            username=self.username,
            password=self.password,
            identifier=self.client_id,
            keepalive=self.keepalive,
            tls_context=tls_context,
            will=will,
        )

        stack = AsyncExitStack()
        try:
            await stack.enter_async_context(client)
            await client.subscribe(topic, qos=self.qos)
            if self.lwt_topic:
                await client.publish(self.lwt_topic, b"online", qos=1, retain=True)
        except BaseException:
            await stack.aclose()
            raise

        self.client = client
        self.topic = topic
        self._stack = stack
        log.info(f"MQTT 브로커 연결됨: {host}:{port} topic:{topic}")

    async def close(self) -> None:
        stack, self._stack = self._stack, None
        self.client = None
        if stack is not None:
            try:
                await stack.aclose()
            except MqttError as e:
                log.debug(f"MQTT 종료 중 오류 무시: {e}")
            log.info("MQTT 연결 종료됨")

    async def send(self, frame: bytes) -> None:
        if self.client is None or self.topic is None:
            raise TransportUnavailable("MQTT 클라이언트가 연결되지 않았습니다")
        try:
            await self.client.publish(self.topic, frame, qos=self.qos)
        except MqttError as e:
            raise TransportUnavailable(str(e)) from e

    async def frames(self) -> AsyncIterator[bytes]:
        if self.client is None:
            raise TransportUnavailable("MQTT 클라이언트가 연결되지 않았습니다")
        async for message in self.client.messages:
            payload = message.payload
            if isinstance(payload, (bytes, bytearray)):
                yield bytes(payload)
            elif isinstance(payload, str):
                yield payload.encode("utf-8")
            else:
                log.debug(f"바이트가 아닌 페이로드 무시: {type(payload).__name__}")
