"""
Change event definitions for FenceSync.

Each event name maps to one payload model. Events are validated when they
are built for sending and when frames arrive, so listeners only ever see
checked payloads. A change event is a hint to re-fetch, never the state.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fencesync.core.errors import InvalidEventPayload


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PerimeterRef(_Payload):
    perimeter_id: int = Field(alias="perimeterId")


class FenceRef(_Payload):
    fence_id: int = Field(alias="fenceId")


class FenceActivity(_Payload):
    """디바이스의 펜스 진입/이탈/체류 이벤트"""
    fence_id: int = Field(alias="fenceId")
    event_type: Literal["enter", "exit", "dwell"] = Field(alias="eventType")
    timestamp: str
    coordinates: Tuple[float, float]


class Notice(_Payload):
    message: str = ""


# 로컬 전용 수명주기 이벤트
CONNECT = "connect"
DISCONNECT = "disconnect"
ERROR = "error"
RECONNECT_FAILED = "reconnect_failed"

PERIMETER_UPDATED = "perimeter_updated"
PERIMETER_DELETED = "perimeter_deleted"
FENCE_CREATED = "fence_created"
FENCE_UPDATED = "fence_updated"
FENCE_DELETED = "fence_deleted"

EVENT_PAYLOADS: Dict[str, Optional[Type[_Payload]]] = {
    PERIMETER_UPDATED: PerimeterRef,
    PERIMETER_DELETED: PerimeterRef,
    FENCE_CREATED: FenceRef,
    FENCE_UPDATED: FenceRef,
    FENCE_DELETED: FenceRef,
    "fence_event": FenceActivity,
    "connect_success": Notice,
    ERROR: Notice,
    CONNECT: None,
    DISCONNECT: None,
    RECONNECT_FAILED: None,
}


@dataclass(frozen=True)
class ChangeEvent:
    type: str
    payload: Optional[_Payload] = None

    def to_frame(self) -> bytes:
        body = self.payload.model_dump(by_alias=True, mode="json") if self.payload is not None else None
        return json.dumps({"type": self.type, "payload": body}, ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_frame(cls, raw: Union[bytes, str]) -> "ChangeEvent":
        """
        수신 프레임을 파싱하고 검증합니다.

        Raises:
            InvalidEventPayload: JSON 이 아니거나 타입/페이로드가 잘못된 경우
        """
        try:
            text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
            obj = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidEventPayload(f"malformed frame: {e}") from e
        if not isinstance(obj, dict) or not isinstance(obj.get("type"), str):
            raise InvalidEventPayload("frame must be an object with a string 'type'")
        return build_event(obj["type"], obj.get("payload"))


def build_event(event_type: str, payload: Any = None) -> ChangeEvent:
    """
    이벤트 이름에 맞는 페이로드 모델로 검증된 ChangeEvent 를 만듭니다.

    Args:
        event_type: 이벤트 이름
        payload: dict, 페이로드 모델 또는 None

    Raises:
        InvalidEventPayload: 등록되지 않은 이벤트이거나 페이로드가 맞지 않는 경우
    """
    if event_type not in EVENT_PAYLOADS:
        raise InvalidEventPayload(f"unknown event type: {event_type}")

    model = EVENT_PAYLOADS[event_type]
    if model is None:
        return ChangeEvent(event_type, None)
    if isinstance(payload, model):
        return ChangeEvent(event_type, payload)
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(by_alias=True)
    try:
        return ChangeEvent(event_type, model.model_validate(payload if payload is not None else {}))
    except ValidationError as e:
        raise InvalidEventPayload(f"invalid payload for {event_type}: {e.error_count()} error(s)") from e
