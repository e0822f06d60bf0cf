"""
hypothesis를 활용한 normalize 모듈 테스트

이 모듈은 좌표 순서 변환과 링 열기/닫기, 링 검증을
속성 기반으로 테스트합니다.
"""

import math

import pytest
from hypothesis import given, strategies as st, assume

from fencesync.core.errors import InvalidRing
from fencesync.core.normalize import (
    close_ring,
    normalize_for_storage,
    open_ring,
    remove_consecutive_duplicates,
    to_display_order,
    to_storage_order,
    validate,
)


pair_strategy = st.tuples(
    st.floats(min_value=-90, max_value=90, allow_nan=False, allow_infinity=False),
    st.floats(min_value=-180, max_value=180, allow_nan=False, allow_infinity=False),
).map(list)
pairs_strategy = st.lists(pair_strategy, max_size=10)


class TestOrderConversion:
    """저장/표시 순서 변환 테스트"""

    @given(pairs=pairs_strategy)
    def test_storage_display_round_trip(self, pairs):
        """표시 순서로 갔다가 돌아오면 원래 값"""
        assert to_storage_order(to_display_order(pairs)) == pairs

    def test_swaps_components(self):
        """위도/경도 교환"""
        assert to_display_order([[-23.55, -46.63]]) == [[-46.63, -23.55]]
        assert to_storage_order([[-46.63, -23.55]]) == [[-23.55, -46.63]]

    def test_input_is_not_mutated(self):
        """입력을 변경하지 않음"""
        pairs = [[1.0, 2.0], [3.0, 4.0]]

        to_display_order(pairs)
        close_ring(pairs)
        open_ring(pairs)

        assert pairs == [[1.0, 2.0], [3.0, 4.0]]


class TestRingBoundaries:
    """링 열기/닫기 테스트"""

    @given(pairs=pairs_strategy)
    def test_open_after_close_restores_open_ring(self, pairs):
        """열린 링을 닫았다 열면 원래 링"""
        assume(len(pairs) < 2 or pairs[0] != pairs[-1])

        assert open_ring(close_ring(pairs)) == pairs

    @given(pairs=st.lists(pair_strategy, min_size=1, max_size=10))
    def test_closed_ring_ends_where_it_starts(self, pairs):
        """닫힌 링의 처음과 끝이 같음"""
        ring = close_ring(pairs)

        assert ring[0] == ring[-1]

    @given(pairs=pairs_strategy)
    def test_close_ring_is_idempotent(self, pairs):
        """두 번 닫아도 같음"""
        assert close_ring(close_ring(pairs)) == close_ring(pairs)

    def test_empty_and_single_vertex_rings(self):
        """빈 링과 단일 꼭짓점"""
        assert close_ring([]) == []
        assert open_ring([]) == []
        assert open_ring([[1.0, 2.0]]) == [[1.0, 2.0]]

    def test_remove_consecutive_duplicates(self):
        """인접 중복만 제거"""
        pairs = [[0, 0], [0, 0], [1, 1], [0, 0], [2, 2], [2, 2]]

        assert remove_consecutive_duplicates(pairs) == [[0, 0], [1, 1], [0, 0], [2, 2]]


class TestValidate:
    """링 검증 테스트"""

    def test_valid_triangle(self):
        """정상 삼각형"""
        ring = validate([[0.0, 0.0], [0.0, 1.0], [1.0, 1.0]])

        assert ring == [[0.0, 0.0], [0.0, 1.0], [1.0, 1.0]]

    def test_closed_ring_is_returned_open(self):
        """닫힌 링은 열린 링으로 반환"""
        ring = validate([[0.0, 0.0], [0.0, 1.0], [1.0, 1.0], [0.0, 0.0]])

        assert ring == [[0.0, 0.0], [0.0, 1.0], [1.0, 1.0]]

    def test_closed_triangle_of_two_distinct_vertices_is_rejected(self):
        """닫힌 링이라도 서로 다른 꼭짓점이 3개 미만이면 거부"""
        with pytest.raises(InvalidRing):
            validate([[0.0, 0.0], [0.0, 1.0], [0.0, 0.0]])

    @given(pairs=st.lists(pair_strategy, max_size=2))
    def test_short_rings_are_rejected(self, pairs):
        """꼭짓점 3개 미만 거부"""
        with pytest.raises(InvalidRing):
            validate(pairs)

    @pytest.mark.parametrize("bad", [
        [[0.0, 0.0], [0.0, 1.0], [math.nan, 1.0]],
        [[0.0, 0.0], [0.0, 1.0], [math.inf, 1.0]],
        [[0.0, 0.0], [0.0, 1.0], [91.0, 1.0]],
        [[0.0, 0.0], [0.0, 1.0], [1.0, 181.0]],
        [[0.0, 0.0], [0.0, 1.0], [1.0]],
        [[0.0, 0.0], [0.0, 1.0], ["1", 1.0]],
        [[0.0, 0.0], [0.0, 1.0], [True, 1.0]],
    ])
    def test_bad_vertices_are_rejected(self, bad):
        """잘못된 꼭짓점 거부"""
        with pytest.raises(InvalidRing):
            validate(bad)


class TestNormalizeForStorage:
    """편집 초안 → 저장 형식 변환 테스트"""

    def test_closed_display_ring_becomes_open_storage_ring(self):
        """닫힌 표시 순서 링 → 열린 저장 순서 링"""
        display = [[-46.63, -23.55], [-46.62, -23.55], [-46.62, -23.56], [-46.63, -23.55]]

        assert normalize_for_storage(display) == [[-23.55, -46.63], [-23.55, -46.62], [-23.56, -46.62]]

    def test_dragged_duplicates_are_collapsed(self):
        """겹친 꼭짓점 제거"""
        display = [[0.0, 0.0], [1.0, 0.0], [1.0, 0.0], [1.0, 1.0]]

        assert normalize_for_storage(display) == [[0.0, 0.0], [0.0, 1.0], [1.0, 1.0]]

    def test_collapsed_ring_is_rejected(self):
        """중복 제거 후 너무 짧으면 거부"""
        with pytest.raises(InvalidRing):
            normalize_for_storage([[0.0, 0.0], [1.0, 0.0], [1.0, 0.0]])
