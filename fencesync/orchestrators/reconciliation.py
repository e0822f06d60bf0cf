"""
Reconciliation controller for FenceSync.

This module coordinates optimistic local mutation, the remote persistence
call, change broadcasting and rollback for perimeter and fence edits.
Callers observe either the new state persisted and broadcast, or the
pre-edit state restored. A save that has reached the network always runs
to completion even if the caller is cancelled.
"""

import asyncio
import itertools
from datetime import datetime, timezone
from typing import Awaitable, Dict, Iterable, List, Optional, Sequence, TypeVar

from fencesync.core import events, normalize
from fencesync.core.edit_session import DrawSnapshot, SaveRequest
from fencesync.core.errors import PersistenceFailure
from fencesync.core.models import DRAFT_PERIMETER_ID, Geofence, Perimeter, rule_from_template
from fencesync.core.state import PerimeterCache
from fencesync.dispatch.broadcaster import ChangeBroadcaster, Subscription
from fencesync.observability import metrics
from fencesync.observability.logging_setup import get_logger, with_context
from fencesync.ports.geocoding import GeocodingPort
from fencesync.ports.persistence import PerimeterStorePort

log = get_logger("fencesync.reconciliation")

T = TypeVar("T")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReconciliationController:
    """낙관적 업데이트 → 영속화 → 브로드캐스트 / 실패 시 롤백"""

    def __init__(self,
                 store: PerimeterStorePort,
                 broadcaster: ChangeBroadcaster,
                 *,
                 geocoder: Optional[GeocodingPort] = None,
                 cache: Optional[PerimeterCache] = None):
        """
        초기화합니다.

        Args:
            store: 원격 저장소 포트
            broadcaster: 변경 이벤트 브로드캐스터
            geocoder: 역지오코딩 포트 (없으면 주소 주석 생략)
            cache: 로컬 퍼리미터 상태 (없으면 새로 생성)
        """
        self.store = store
        self.broadcaster = broadcaster
        self.geocoder = geocoder
        self.cache = cache if cache is not None else PerimeterCache()
        self._watched: set = set()
        self._subscriptions: List[Subscription] = []
        self._inflight: set = set()
        # 저장 중인 새 퍼리미터 초안 (음수 임시 키 → 초안)
        self._draft_keys = itertools.count(-1, -1)
        self._pending_drafts: Dict[int, Perimeter] = {}

    @property
    def watched_fences(self) -> List[int]:
        return sorted(self._watched)

    # ---- 실행 보조 ----
    async def _run_detached(self, coro: Awaitable[T]) -> T:
        """호출자가 취소되어도 끝까지 실행되도록 작업을 분리해 실행합니다."""
        task = asyncio.ensure_future(coro)
        self._inflight.add(task)
        task.add_done_callback(self._forget)
        return await asyncio.shield(task)

    def _forget(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            # 호출자가 이미 떠났어도 예외는 기록되게 한다
            log.debug(f"분리 작업 종료 error:{task.exception()}")

    async def _rollback(self, fence_id: int, before: Sequence[Perimeter], operation: str) -> None:
        """권위 있는 상태를 다시 가져와 로컬 상태를 되돌립니다. 재조회도 실패하면 편집 전 스냅샷으로 복원합니다."""
        metrics.rollbacks.labels(operation=operation).inc()
        try:
            authoritative: Iterable[Perimeter] = await self.store.list_perimeters(fence_id)
            log.warning(f"{operation} 실패, 서버 상태로 롤백 fence:{fence_id}")
        except Exception as e:
            authoritative = [p for p in before if p.id > DRAFT_PERIMETER_ID]
            log.warning(f"{operation} 실패, 재조회도 실패하여 스냅샷으로 롤백 fence:{fence_id} error:{e}")
        self._replace_fence(fence_id, authoritative)

    def _replace_fence(self, fence_id: int, perimeters: Iterable[Perimeter]) -> None:
        """펜스 상태를 교체하되 아직 저장 중인 초안은 유지합니다."""
        self.cache.replace_fence(fence_id, perimeters)
        for draft in self._pending_drafts.values():
            if draft.fence_id == fence_id:
                self.cache.put(draft)

    # ---- 퍼리미터 ----
    async def save_perimeter(self,
                             fence_id: int,
                             perimeter_id: Optional[int],
                             storage_vertices: Sequence[Sequence[float]]) -> Perimeter:
        """
        퍼리미터 형상을 저장합니다.

        Args:
            fence_id: 소유 펜스 ID
            perimeter_id: 기존 퍼리미터 ID (None 또는 0 이면 새로 생성)
            storage_vertices: 저장 순서 좌표

        Returns:
            저장된 퍼리미터

        Raises:
            InvalidRing: 좌표가 잘못된 경우 (부수 효과 없음)
            PersistenceFailure: 원격 저장 실패 (로컬 상태는 이미 롤백됨)
        """
        coordinates = normalize.validate(storage_vertices)
        with with_context(fence_id=fence_id, operation="save_perimeter"):
            return await self._run_detached(self._save_perimeter(fence_id, perimeter_id, coordinates))

    async def save_session(self, fence_id: int, request: SaveRequest) -> Perimeter:
        """편집 세션의 저장 요청을 반영합니다."""
        return await self.save_perimeter(fence_id, request.perimeter_id, request.coordinates)

    async def _save_perimeter(self, fence_id: int, perimeter_id: Optional[int],
                              coordinates: List[List[float]]) -> Perimeter:
        with metrics.save_seconds.time():
            current = self.cache.get(perimeter_id) if perimeter_id else None
            if perimeter_id and current is None:
                log.warning(f"로컬에 없는 퍼리미터, 새로 생성합니다: {perimeter_id}")
            is_new = current is None
            if current is not None:
                fence_id = current.fence_id
            operation = "create_perimeter" if is_new else "update_perimeter"

            before = self.cache.snapshot(fence_id)
            draft_key = None
            if is_new:
                draft_key = next(self._draft_keys)
                optimistic = Perimeter(id=draft_key, fence_id=fence_id, type="polygon",
                                       coordinates=coordinates, created_at=_now())
                self._pending_drafts[draft_key] = optimistic
            else:
                optimistic = current.model_copy(update={"coordinates": coordinates})
            self.cache.put(optimistic)

            try:
                if is_new:
                    saved = await self.store.create_perimeter(
                        optimistic.model_copy(update={"id": DRAFT_PERIMETER_ID})
                    )
                else:
                    saved = await self.store.update_perimeter(current.id, optimistic)
            except Exception as e:
                metrics.perimeter_saves.labels(operation=operation, outcome="failure").inc()
                if draft_key is not None:
                    self._pending_drafts.pop(draft_key, None)
                    self.cache.remove(draft_key)
                await self._rollback(fence_id, before, operation)
                raise PersistenceFailure(operation, perimeter_id, e) from e

            if draft_key is not None:
                self._pending_drafts.pop(draft_key, None)
                self.cache.remove(draft_key)
            self.cache.put(saved)
            metrics.perimeter_saves.labels(operation=operation, outcome="success").inc()
            log.info(f"퍼리미터 저장 완료 id:{saved.id} fence:{saved.fence_id} new:{is_new}")

        if is_new:
            await self.broadcaster.send(events.FENCE_UPDATED, {"fenceId": saved.fence_id})
        await self.broadcaster.send(events.PERIMETER_UPDATED, {"perimeterId": saved.id})
        return saved

    async def rename_perimeter(self, perimeter_id: int, name: str) -> Optional[Perimeter]:
        """퍼리미터 이름을 낙관적으로 변경합니다. 로컬에 없으면 무시합니다."""
        current = self.cache.get(perimeter_id)
        if current is None:
            log.warning(f"이름 변경 대상 퍼리미터 없음: {perimeter_id}")
            return None
        return await self._run_detached(self._rename_perimeter(current, name))

    async def _rename_perimeter(self, current: Perimeter, name: str) -> Perimeter:
        before = self.cache.snapshot(current.fence_id)
        optimistic = current.model_copy(update={"name": name})
        self.cache.put(optimistic)
        try:
            saved = await self.store.update_perimeter(current.id, optimistic)
        except Exception as e:
            metrics.perimeter_saves.labels(operation="rename_perimeter", outcome="failure").inc()
            await self._rollback(current.fence_id, before, "rename_perimeter")
            raise PersistenceFailure("rename_perimeter", current.id, e) from e

        self.cache.put(saved)
        metrics.perimeter_saves.labels(operation="rename_perimeter", outcome="success").inc()
        await self.broadcaster.send(events.PERIMETER_UPDATED, {"perimeterId": saved.id})
        return saved

    async def delete_perimeter(self, perimeter_id: int) -> None:
        await self._run_detached(self._delete_perimeter(perimeter_id))

    async def _delete_perimeter(self, perimeter_id: int) -> None:
        fence_id = self.cache.fence_of(perimeter_id)
        before = self.cache.snapshot(fence_id) if fence_id is not None else []
        self.cache.remove(perimeter_id)
        try:
            await self.store.delete_perimeter(perimeter_id)
        except Exception as e:
            metrics.perimeter_saves.labels(operation="delete_perimeter", outcome="failure").inc()
            if fence_id is not None:
                await self._rollback(fence_id, before, "delete_perimeter")
            raise PersistenceFailure("delete_perimeter", perimeter_id, e) from e

        metrics.perimeter_saves.labels(operation="delete_perimeter", outcome="success").inc()
        await self.broadcaster.send(events.PERIMETER_DELETED, {"perimeterId": perimeter_id})

    # ---- 펜스 ----
    async def create_fence(self,
                           fence: Geofence,
                           snapshot: DrawSnapshot,
                           rule_template: Optional[str] = None) -> Geofence:
        """
        그린 폴리곤으로 펜스, 퍼리미터, 기본 규칙을 생성합니다.

        중간 단계가 실패하면 이미 만든 펜스를 지우고 PersistenceFailure 를 냅니다.
        """
        coordinates = normalize.validate(snapshot.storage_vertices)
        with with_context(operation="create_fence"):
            return await self._run_detached(self._create_fence(fence, snapshot, coordinates, rule_template))

    async def _create_fence(self, fence: Geofence, snapshot: DrawSnapshot,
                            coordinates: List[List[float]], rule_template: Optional[str]) -> Geofence:
        created_at = _now()
        update = {"created_at": fence.created_at or created_at}
        if not fence.description and self.geocoder is not None:
            try:
                update["description"] = await self.geocoder.reverse(snapshot.center)
            except Exception as e:
                log.warning(f"주소 조회 실패, 설명 없이 생성 error:{e}")
        draft = fence.model_copy(update=update)

        try:
            created = await self.store.create_fence(draft)
        except Exception as e:
            raise PersistenceFailure("create_fence", None, e) from e

        try:
            perimeter = await self.store.create_perimeter(
                Perimeter(fence_id=created.id, type="polygon", coordinates=coordinates, created_at=created_at)
            )
            rule = rule_from_template(created.id, rule_template).model_copy(update={"created_at": created_at})
            await self.store.create_rule(rule)
        except Exception as e:
            log.error(f"펜스 생성 중간 실패, 생성된 펜스 정리 fence:{created.id} error:{e}")
            try:
                await self._cascade_delete(created.id)
            except Exception as cleanup_error:
                log.error(f"펜스 정리 실패 fence:{created.id} error:{cleanup_error}")
            raise PersistenceFailure("create_fence", created.id, e) from e

        self.cache.put(perimeter)
        self._watched.add(created.id)
        log.info(f"펜스 생성 완료 id:{created.id} area:{snapshot.area_m2:.1f}m²")
        await self.broadcaster.send(events.FENCE_CREATED, {"fenceId": created.id})
        return created.model_copy(update={"perimeters": [perimeter]})

    async def delete_fence(self, fence_id: int) -> None:
        """펜스와 그 퍼리미터, 규칙, 핀을 모두 삭제합니다."""
        with with_context(fence_id=fence_id, operation="delete_fence"):
            await self._run_detached(self._delete_fence(fence_id))

    async def _delete_fence(self, fence_id: int) -> None:
        before = self.cache.snapshot(fence_id)
        self.cache.drop_fence(fence_id)
        try:
            await self._cascade_delete(fence_id)
        except Exception as e:
            await self._rollback(fence_id, before, "delete_fence")
            raise PersistenceFailure("delete_fence", fence_id, e) from e

        self._watched.discard(fence_id)
        log.info(f"펜스 삭제 완료 id:{fence_id}")
        await self.broadcaster.send(events.FENCE_DELETED, {"fenceId": fence_id})

    async def _cascade_delete(self, fence_id: int) -> None:
        for perimeter in await self.store.list_perimeters(fence_id):
            await self.store.delete_perimeter(perimeter.id)
        for rule in await self.store.list_rules(fence_id):
            await self.store.delete_rule(rule.id)
        for pin in await self.store.list_pins(fence_id):
            await self.store.delete_pin(pin.id)
        await self.store.delete_fence(fence_id)

    # ---- 동기화 ----
    async def load_fence(self, fence_id: int) -> List[Perimeter]:
        """펜스의 퍼리미터를 불러와 감시 대상으로 등록합니다."""
        perimeters = await self.store.list_perimeters(fence_id)
        self._replace_fence(fence_id, perimeters)
        self._watched.add(fence_id)
        return perimeters

    async def refresh(self, fence_id: int) -> None:
        perimeters = await self.store.list_perimeters(fence_id)
        self._replace_fence(fence_id, perimeters)
        log.debug(f"펜스 재조회 fence:{fence_id} count:{len(perimeters)}")

    async def _refresh_quietly(self, fence_ids: Iterable[int]) -> None:
        for fence_id in list(fence_ids):
            try:
                await self.refresh(fence_id)
            except Exception as e:
                log.warning(f"변경 알림 후 재조회 실패 fence:{fence_id} error:{e}")

    def attach(self) -> None:
        """브로드캐스터의 변경 알림을 구독합니다. 알림은 재조회 힌트로만 사용합니다."""
        if self._subscriptions:
            return
        self._subscriptions = [
            self.broadcaster.on(events.PERIMETER_UPDATED, self._on_perimeter_changed),
            self.broadcaster.on(events.PERIMETER_DELETED, self._on_perimeter_changed),
            self.broadcaster.on(events.FENCE_UPDATED, self._on_fence_updated),
            self.broadcaster.on(events.FENCE_DELETED, self._on_fence_deleted),
        ]

    async def _on_perimeter_changed(self, payload: events.PerimeterRef) -> None:
        fence_id = self.cache.fence_of(payload.perimeter_id)
        targets = [fence_id] if fence_id in self._watched else list(self._watched)
        await self._refresh_quietly(targets)

    async def _on_fence_updated(self, payload: events.FenceRef) -> None:
        if payload.fence_id in self._watched:
            await self._refresh_quietly([payload.fence_id])

    def _on_fence_deleted(self, payload: events.FenceRef) -> None:
        if payload.fence_id in self._watched:
            self._watched.discard(payload.fence_id)
            self.cache.drop_fence(payload.fence_id)

    async def close(self) -> None:
        """구독을 해제하고 진행 중인 저장이 끝날 때까지 기다립니다."""
        for subscription in self._subscriptions:
            subscription.release()
        self._subscriptions = []
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
