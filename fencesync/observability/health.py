"""
HTTP endpoints for FenceSync observability.

This module implements health, readiness, metrics, info and a geometry
measurement endpoint for monitoring and operational visibility.
"""

import time
from typing import List, Literal, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from fencesync.core import geomath, normalize
from fencesync.core.errors import InvalidRing
from fencesync.core.models import Perimeter
from fencesync.dispatch.broadcaster import ChangeBroadcaster
from fencesync.observability import metrics as fence_metrics
from fencesync.observability.logging_setup import get_logger
from fencesync.settings import Settings

log = get_logger("fencesync.http")


class MeasureRequest(BaseModel):
    type: Literal["polygon", "circle"] = "polygon"
    coordinates: Optional[List[List[float]]] = None
    order: Literal["storage", "display"] = "storage"
    center: Optional[List[float]] = None
    radius: Optional[float] = None


def create_app(settings: Settings, broadcaster: Optional[ChangeBroadcaster] = None) -> FastAPI:
    """FastAPI 애플리케이션을 생성합니다."""
    app = FastAPI(
        title=settings.observability.service_name,
        version=settings.observability.build_version,
        description="FenceSync Perimeter Sync Service"
    )

    start_time = time.time()

    @app.get("/health")
    async def health():
        """헬스 체크 엔드포인트"""
        return JSONResponse({
            "status": "ok",
            "service": settings.observability.service_name,
            "timestamp": time.time()
        })

    @app.get("/ready")
    async def ready():
        """레디니스 체크 엔드포인트 (브로드캐스터 연결 상태 기준)"""
        state = broadcaster.state.value if broadcaster is not None else "absent"
        body = {
            "service": settings.observability.service_name,
            "broadcaster": state,
            "timestamp": time.time()
        }
        if broadcaster is None or not broadcaster.connected:
            body["status"] = "not_ready"
            return JSONResponse(body, status_code=503)
        body["status"] = "ready"
        return JSONResponse(body)

    @app.get("/metrics")
    async def metrics():
        """Prometheus 메트릭 엔드포인트"""
        if not settings.observability.metrics_enabled:
            raise HTTPException(status_code=503, detail="Metrics disabled")

        try:
            return Response(
                generate_latest(),
                media_type=CONTENT_TYPE_LATEST
            )
        except Exception as e:
            log.error(f"메트릭 생성 오류: {e}")
            raise HTTPException(status_code=500, detail="Metrics generation failed")

    @app.get("/info")
    async def info():
        """서비스 정보 엔드포인트"""
        uptime = time.time() - start_time
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "build_date": settings.observability.build_date,
            "uptime_seconds": int(uptime),
            "metrics_enabled": settings.observability.metrics_enabled,
            "log_level": settings.observability.log_level,
            "broker": settings.broker.endpoint
        })

    @app.post("/geometry/measure")
    async def measure(request: MeasureRequest):
        """폴리곤 또는 원의 면적과 둘레를 계산합니다."""
        with fence_metrics.measure_seconds.time():
            if request.type == "circle":
                if request.center is None or request.radius is None or request.radius < 0:
                    raise HTTPException(status_code=422, detail="circle requires center and non-negative radius")
                perimeter = Perimeter(fence_id=0, type="circle", center=request.center, radius=request.radius)
            else:
                pairs = request.coordinates or []
                if request.order == "display":
                    pairs = normalize.to_storage_order(pairs)
                try:
                    ring = normalize.validate(pairs)
                except InvalidRing as e:
                    raise HTTPException(status_code=422, detail=str(e))
                perimeter = Perimeter(fence_id=0, type="polygon", coordinates=ring)

            result = geomath.measure(perimeter)

        return {
            "type": perimeter.type,
            "area_m2": result.area_m2,
            "perimeter_m": result.perimeter_m,
            "area_text": geomath.format_area(result.area_m2),
            "perimeter_text": geomath.format_distance(result.perimeter_m),
            "center": result.center.to_storage() if result.center else None
        }

    @app.get("/")
    async def root():
        """루트 엔드포인트"""
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "endpoints": {
                "health": "/health",
                "ready": "/ready",
                "metrics": "/metrics",
                "info": "/info",
                "measure": "/geometry/measure"
            }
        })

    return app
