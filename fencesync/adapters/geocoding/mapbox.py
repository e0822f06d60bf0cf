"""
Mapbox reverse geocoder for FenceSync.

Annotates a drawn polygon with a human-readable address. Best-effort:
any failure yields the placeholder string and never blocks the caller.
"""

import asyncio
import aiohttp
from typing import Optional
from fencesync.core.models import Vertex
from fencesync.observability.logging_setup import get_logger

log = get_logger("fencesync.geocoding")

class MapboxGeocoder:
    """Mapbox places 역지오코딩 어댑터"""

    def __init__(self,
                 access_token: str,
                 *,
                 base_url: str = "https://api.mapbox.com/geocoding/v5/mapbox.places",
                 placeholder: str = "Address not found",
                 timeout: int = 5,
                 session: Optional[aiohttp.ClientSession] = None):
        self.access_token = access_token
        self.base_url = base_url.rstrip('/')
        self.placeholder = placeholder
        self.timeout = timeout
        self._session = session

    async def reverse(self, vertex: Vertex) -> str:
        """좌표의 주소를 반환합니다. 실패하면 대체 문자열을 반환합니다."""
        if not self.access_token:
            log.debug("Mapbox 토큰 없음, 주소 조회 생략")
            return self.placeholder

        # Mapbox 는 경도,위도 순서
        url = f"{self.base_url}/{vertex.longitude},{vertex.latitude}.json"
        params = {"access_token": self.access_token, "limit": "1"}

        try:
            if self._session is not None:
                data = await self._fetch(self._session, url, params)
            else:
                async with aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as session:
                    data = await self._fetch(session, url, params)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            log.warning(f"주소 조회 실패 lat:{vertex.latitude} lon:{vertex.longitude} error:{e}")
            return self.placeholder

        features = data.get("features") if isinstance(data, dict) else None
        if features and features[0].get("place_name"):
            return features[0]["place_name"]

        log.info(f"주소 결과 없음 lat:{vertex.latitude} lon:{vertex.longitude}")
        return self.placeholder

    async def _fetch(self, session: aiohttp.ClientSession, url: str, params: dict):
        async with session.get(url, params=params) as response:
            response.raise_for_status()
            return await response.json()
