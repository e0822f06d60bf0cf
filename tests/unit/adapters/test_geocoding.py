"""
Mapbox 역지오코더 단위 테스트
"""

import asyncio

import aiohttp
import pytest
from unittest.mock import Mock

from fencesync.adapters.geocoding.mapbox import MapboxGeocoder
from fencesync.core.models import Vertex

CENTER = Vertex(latitude=-23.555, longitude=-46.625)


def _geocoder(session, token="pk.test"):
    return MapboxGeocoder(token, base_url="https://geo.test/places/", session=session)


class TestMapboxGeocoder:
    """역지오코딩 테스트"""

    @pytest.mark.asyncio
    async def test_returns_first_place_name(self, make_response):
        """첫 번째 결과의 주소"""
        session = Mock()
        session.get = Mock(return_value=make_response(200, {"features": [
            {"place_name": "Av. Paulista, São Paulo"},
            {"place_name": "Brazil"},
        ]}))

        address = await _geocoder(session).reverse(CENTER)

        assert address == "Av. Paulista, São Paulo"
        url = session.get.call_args.args[0]
        assert url == "https://geo.test/places/-46.625,-23.555.json"
        assert session.get.call_args.kwargs["params"]["access_token"] == "pk.test"

    @pytest.mark.asyncio
    async def test_no_token_returns_placeholder(self):
        """토큰 없으면 요청하지 않음"""
        session = Mock()

        address = await _geocoder(session, token="").reverse(CENTER)

        assert address == "Address not found"
        session.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_result_returns_placeholder(self, make_response):
        """결과 없음"""
        session = Mock()
        session.get = Mock(return_value=make_response(200, {"features": []}))

        assert await _geocoder(session).reverse(CENTER) == "Address not found"

    @pytest.mark.asyncio
    async def test_http_error_returns_placeholder(self, make_response):
        """HTTP 오류"""
        session = Mock()
        session.get = Mock(return_value=make_response(401))

        assert await _geocoder(session).reverse(CENTER) == "Address not found"

    @pytest.mark.asyncio
    async def test_connection_error_returns_placeholder(self):
        """연결 오류"""
        session = Mock()
        session.get = Mock(side_effect=aiohttp.ClientConnectionError("dns"))

        assert await _geocoder(session).reverse(CENTER) == "Address not found"

    @pytest.mark.asyncio
    async def test_custom_placeholder(self):
        """대체 문자열 지정"""
        geocoder = MapboxGeocoder("", placeholder="주소 없음")

        assert await geocoder.reverse(CENTER) == "주소 없음"

    @pytest.mark.asyncio
    async def test_timeout_returns_placeholder(self):
        """요청 시간 초과"""
        session = Mock()
        session.get = Mock(side_effect=asyncio.TimeoutError())

        assert await _geocoder(session).reverse(CENTER) == "Address not found"
