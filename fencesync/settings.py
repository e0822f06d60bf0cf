# fencesync/settings.py
from __future__ import annotations
from pydantic import BaseModel, Field

class BrokerConfig(BaseModel):
    host: str = "localhost"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    tls: bool = False
    client_id: str | None = None
    keepalive: int = 30
    topic: str = "fencesync/events"
    qos: int = 1
    lwt_topic: str = "fencesync/state"
    lwt_payload: str = "offline"

    @property
    def endpoint(self) -> str:
        scheme = "mqtts" if self.tls else "mqtt"
        return f"{scheme}://{self.host}:{self.port}/{self.topic.lstrip('/')}"

class BroadcastConfig(BaseModel):
    reconnect_interval_sec: float = 5.0      # 고정 간격 (지수 백오프 아님)
    max_reconnect_attempts: int = 10

class ApiConfig(BaseModel):
    base_url: str = "http://localhost:3000/api"
    token: str = ""
    timeout_sec: int = 10
    max_retries: int = 3

class GeocodingConfig(BaseModel):
    enabled: bool = True
    base_url: str = "https://api.mapbox.com/geocoding/v5/mapbox.places"
    access_token: str = ""
    placeholder: str = "Address not found"
    timeout_sec: int = 5

class Observability(BaseModel):
    http_port: int = 8099
    metrics_enabled: bool = True
    service_name: str = "FenceSync"
    build_version: str = "0.1.0"
    build_date: str = "2026-10-19"
    log_level: str = "INFO"

class Settings(BaseModel):
    broker: BrokerConfig = Field(default_factory=BrokerConfig)
    broadcast: BroadcastConfig = Field(default_factory=BroadcastConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    geocoding: GeocodingConfig = Field(default_factory=GeocodingConfig)
    observability: Observability = Field(default_factory=Observability)
