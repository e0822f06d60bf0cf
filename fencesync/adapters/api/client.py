"""
REST persistence client for FenceSync.

This module provides a client for the geofence REST API that owns
fences, perimeters, rules and pins. It implements PerimeterStorePort.
"""

import asyncio
import aiohttp
from typing import Any, List, Optional
from fencesync.common.retry import retry_with_backoff
from fencesync.core.models import Geofence, GeofencePin, Perimeter, Rule
from fencesync.observability.logging_setup import get_logger

log = get_logger("fencesync.api")

# 같은 요청을 반복해도 결과가 같은 메서드만 재시도한다
IDEMPOTENT_METHODS = {"GET", "PUT", "DELETE"}

class FenceApiClient:
    """지오펜스 REST API 클라이언트"""

    def __init__(self,
                 base_url: str,
                 token: str = "",
                 timeout: int = 10,
                 max_retries: int = 3):
        """
        초기화합니다.

        Args:
            base_url: API 기본 URL (예: http://localhost:3000/api)
            token: Bearer 토큰 (없으면 헤더 생략)
            timeout: 요청 타임아웃 (초)
            max_retries: 멱등 요청 최대 재시도 횟수
        """
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.session: Optional[aiohttp.ClientSession] = None

        log.info(f"API 클라이언트 초기화됨: {self.base_url}")

    async def __aenter__(self):
        """비동기 컨텍스트 매니저 진입"""
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        self.session = aiohttp.ClientSession(
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """비동기 컨텍스트 매니저 종료"""
        if self.session:
            await self.session.close()
            self.session = None

    async def _make_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """
        API 요청을 수행합니다.

        Args:
            method: HTTP 메서드
            endpoint: API 엔드포인트
            **kwargs: 추가 요청 매개변수

        Returns:
            응답 데이터 (204 이면 빈 dict)
        """
        if not self.session:
            raise RuntimeError("세션이 초기화되지 않았습니다. async with를 사용하세요.")

        url = f"{self.base_url}{endpoint}"

        async def _request():
            async with self.session.request(method, url, **kwargs) as response:
                response.raise_for_status()
                if response.status == 204:
                    return {}
                return await response.json()

        if method.upper() in IDEMPOTENT_METHODS:
            return await retry_with_backoff(
                _request,
                max_retries=self.max_retries,
                retry_on=(aiohttp.ClientConnectionError, asyncio.TimeoutError),
            )
        return await _request()

    # ---- 퍼리미터 ----
    async def list_perimeters(self, fence_id: int) -> List[Perimeter]:
        data = await self._make_request("GET", "/perimeters", params={"fenceId": str(fence_id)})
        perimeters = [Perimeter.model_validate(item) for item in data or []]
        log.debug(f"퍼리미터 목록 가져옴 fence:{fence_id} count:{len(perimeters)}")
        return perimeters

    async def create_perimeter(self, perimeter: Perimeter) -> Perimeter:
        body = perimeter.to_wire()
        body.pop("id", None)
        data = await self._make_request("POST", "/perimeters", json=body)
        created = Perimeter.model_validate(data)
        log.info(f"퍼리미터 생성됨 id:{created.id} fence:{created.fence_id}")
        return created

    async def update_perimeter(self, perimeter_id: int, perimeter: Perimeter) -> Perimeter:
        data = await self._make_request("PUT", f"/perimeters/{perimeter_id}", json=perimeter.to_wire())
        # 서버가 본문 없이 응답하면 보낸 값을 그대로 사용
        return Perimeter.model_validate(data) if data else perimeter

    async def delete_perimeter(self, perimeter_id: int) -> None:
        await self._make_request("DELETE", f"/perimeters/{perimeter_id}")
        log.info(f"퍼리미터 삭제됨 id:{perimeter_id}")

    # ---- 펜스 ----
    async def get_fence(self, fence_id: int) -> Geofence:
        data = await self._make_request("GET", f"/fences/{fence_id}")
        return Geofence.model_validate(data)

    async def create_fence(self, fence: Geofence) -> Geofence:
        body = fence.to_wire()
        body.pop("id", None)
        body.pop("perimeters", None)
        data = await self._make_request("POST", "/fences", json=body)
        created = Geofence.model_validate(data)
        log.info(f"펜스 생성됨 id:{created.id} name:{created.name}")
        return created

    async def update_fence(self, fence_id: int, fence: Geofence) -> Geofence:
        body = fence.to_wire()
        body.pop("perimeters", None)
        data = await self._make_request("PUT", f"/fences/{fence_id}", json=body)
        return Geofence.model_validate(data) if data else fence

    async def delete_fence(self, fence_id: int) -> None:
        await self._make_request("DELETE", f"/fences/{fence_id}")
        log.info(f"펜스 삭제됨 id:{fence_id}")

    # ---- 규칙 / 핀 ----
    async def list_rules(self, fence_id: int) -> List[Rule]:
        data = await self._make_request("GET", "/rules", params={"fenceId": str(fence_id)})
        return [Rule.model_validate(item) for item in data or []]

    async def create_rule(self, rule: Rule) -> Rule:
        body = rule.to_wire()
        body.pop("id", None)
        data = await self._make_request("POST", "/rules", json=body)
        return Rule.model_validate(data)

    async def delete_rule(self, rule_id: int) -> None:
        await self._make_request("DELETE", f"/rules/{rule_id}")

    async def list_pins(self, fence_id: int) -> List[GeofencePin]:
        data = await self._make_request("GET", "/geofence_pins", params={"fenceId": str(fence_id)})
        return [GeofencePin.model_validate(item) for item in data or []]

    async def delete_pin(self, pin_id: int) -> None:
        await self._make_request("DELETE", f"/geofence_pins/{pin_id}")
