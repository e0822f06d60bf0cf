"""
Error taxonomy for FenceSync.

InvalidRing and IllegalStateTransition are contract violations raised
synchronously to the immediate caller. PersistenceFailure is raised by the
reconciliation controller after it has already rolled local state back.
TransportUnavailable never reaches callers of ChangeBroadcaster.send.
"""

from typing import Optional


class FenceSyncError(Exception):
    """FenceSync 기본 예외"""


class InvalidRing(FenceSyncError):
    """좌표 링이 너무 짧거나 잘못된 꼭짓점을 포함함"""


class InsufficientVertices(InvalidRing):
    """그리기 확정 시 서로 다른 꼭짓점이 3개 미만"""


class IllegalStateTransition(FenceSyncError):
    """편집 세션을 허용되지 않은 상태에서 호출함"""

    def __init__(self, current: str, attempted: str):
        self.current = current
        self.attempted = attempted
        super().__init__(f"cannot {attempted} while session is {current}")


class PersistenceFailure(FenceSyncError):
    """원격 생성/수정/삭제 실패"""

    def __init__(self, operation: str, entity_id: Optional[int] = None, cause: Optional[BaseException] = None):
        self.operation = operation
        self.entity_id = entity_id
        self.cause = cause
        target = f" (id={entity_id})" if entity_id else ""
        reason = f": {cause}" if cause else ""
        super().__init__(f"{operation} failed{target}{reason}")


class TransportUnavailable(FenceSyncError):
    """브로드캐스터가 네트워크에 도달할 수 없음"""


class InvalidEventPayload(FenceSyncError, ValueError):
    """이벤트 타입을 모르거나 페이로드가 스키마와 맞지 않음"""
