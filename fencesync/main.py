# fencesync/main.py
import os, asyncio, signal
from typing import Optional
import uvicorn
from fencesync.settings import Settings
from fencesync.observability.health import create_app
from fencesync.observability.logging_setup import setup_logging_dev, get_logger
from fencesync.adapters.api.client import FenceApiClient
from fencesync.adapters.geocoding.mapbox import MapboxGeocoder
from fencesync.adapters.mqtt.transport import MqttEventTransport
from fencesync.dispatch.broadcaster import ChangeBroadcaster
from fencesync.orchestrators.reconciliation import ReconciliationController

def _b(name, default=False): return os.getenv(name, str(default)).lower() in ("1","true","yes","on")

def build_settings() -> Settings:
    s = Settings()

    # 브로커
    s.broker.host = os.getenv("BROKER_HOST", s.broker.host)
    s.broker.port = int(os.getenv("BROKER_PORT", s.broker.port))
    s.broker.username = os.getenv("BROKER_USERNAME", s.broker.username)
    s.broker.password = os.getenv("BROKER_PASSWORD", s.broker.password)
    s.broker.client_id = os.getenv("BROKER_CLIENT_ID", s.broker.client_id)
    s.broker.keepalive = int(os.getenv("BROKER_KEEPALIVE", s.broker.keepalive))
    s.broker.tls = _b("BROKER_TLS", s.broker.tls)
    s.broker.topic = os.getenv("EVENT_TOPIC", s.broker.topic)

    # 재연결
    s.broadcast.reconnect_interval_sec = float(os.getenv("RECONNECT_INTERVAL_SEC", s.broadcast.reconnect_interval_sec))
    s.broadcast.max_reconnect_attempts = int(os.getenv("MAX_RECONNECT_ATTEMPTS", s.broadcast.max_reconnect_attempts))

    # REST API
    s.api.base_url = os.getenv("API_BASE_URL", s.api.base_url)
    s.api.token = os.getenv("API_TOKEN", s.api.token)
    s.api.timeout_sec = int(os.getenv("API_TIMEOUT_SEC", s.api.timeout_sec))

    # 지오코딩
    s.geocoding.enabled = _b("GEOCODING_ENABLED", s.geocoding.enabled)
    s.geocoding.access_token = os.getenv("MAPBOX_TOKEN", s.geocoding.access_token)

    # 관측성
    s.observability.metrics_enabled = _b("METRICS_ENABLED", s.observability.metrics_enabled)
    s.observability.http_port = int(os.getenv("METRICS_PORT", s.observability.http_port))
    s.observability.log_level = os.getenv("LOG_LEVEL", s.observability.log_level)

    return s

async def start_http(settings: Settings, broadcaster: Optional[ChangeBroadcaster] = None) -> Optional[asyncio.Task]:
    if not settings.observability.metrics_enabled: return None
    app = create_app(settings, broadcaster)
    return asyncio.create_task(uvicorn.Server(
        uvicorn.Config(app, host="0.0.0.0", port=settings.observability.http_port, log_level="info")
    ).serve())

async def main():
    # 로거 초기화 (환경변수 LOG_LEVEL 우선)
    setup_logging_dev(os.getenv("LOG_LEVEL", "INFO"))
    log = get_logger()

    s = build_settings()
    log.info("설정 로드 완료")

    transport = MqttEventTransport(
        username=s.broker.username,
        password=s.broker.password,
        tls=s.broker.tls,
        client_id=s.broker.client_id,
        keepalive=s.broker.keepalive,
        qos=s.broker.qos,
        lwt_topic=s.broker.lwt_topic,
        lwt_payload=s.broker.lwt_payload,
    )
    broadcaster = ChangeBroadcaster(
        transport,
        reconnect_interval=s.broadcast.reconnect_interval_sec,
        max_reconnect_attempts=s.broadcast.max_reconnect_attempts,
    )
    log.info("브로드캐스터 생성 완료")

    geocoder = None
    if s.geocoding.enabled:
        geocoder = MapboxGeocoder(
            s.geocoding.access_token,
            base_url=s.geocoding.base_url,
            placeholder=s.geocoding.placeholder,
            timeout=s.geocoding.timeout_sec,
        )

    api = FenceApiClient(
        base_url=s.api.base_url,
        token=s.api.token,
        timeout=s.api.timeout_sec,
        max_retries=s.api.max_retries,
    )

    stop = asyncio.Future()
    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try: loop.add_signal_handler(sig, lambda: (not stop.done()) and stop.set_result(True))
            except NotImplementedError: pass
    except RuntimeError: pass

    async with api:
        controller = ReconciliationController(api, broadcaster, geocoder=geocoder)
        controller.attach()
        log.info("컨트롤러 생성 완료")

        # 연결 실패해도 로컬 모드로 계속 동작
        await broadcaster.connect(s.broker.endpoint)

        http_task = await start_http(s, broadcaster)
        if http_task:
            log.info("HTTP 서버 시작됨")

        await stop
        log.info("종료 중")
        await controller.close()
        await broadcaster.disconnect()
        if http_task: http_task.cancel()

def run():
    asyncio.run(main())

if __name__ == "__main__":
    run()
