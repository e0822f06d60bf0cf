"""
Core domain models for FenceSync.

This module defines the core domain models using Pydantic v2
for type safety and validation. Wire names are camelCase.
"""

from typing import Any, Dict, List, Literal, Optional, Sequence
from pydantic import BaseModel, ConfigDict, Field

# 아직 저장되지 않은 초안 퍼리미터 식별자
DRAFT_PERIMETER_ID = 0

PerimeterType = Literal["polygon", "circle"]
RuleCondition = Literal["enter", "exit", "inside", "outside"]
RuleAction = Literal["notify", "alert", "block", "custom"]


class WireModel(BaseModel):
    """camelCase 별칭과 필드명 입력을 모두 허용하는 기본 모델"""
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Vertex(BaseModel):
    """지리 좌표 (순서와 무관한 의미 표현)"""
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float

    @classmethod
    def from_storage(cls, pair: Sequence[float]) -> "Vertex":
        """[위도, 경도] 저장 순서에서 생성합니다."""
        return cls(latitude=pair[0], longitude=pair[1])

    @classmethod
    def from_display(cls, pair: Sequence[float]) -> "Vertex":
        """[경도, 위도] 표시 순서에서 생성합니다."""
        return cls(latitude=pair[1], longitude=pair[0])

    def to_storage(self) -> List[float]:
        return [self.latitude, self.longitude]

    def to_display(self) -> List[float]:
        return [self.longitude, self.latitude]


class Perimeter(WireModel):
    """지오펜스 경계 (폴리곤 또는 원)"""
    id: int = DRAFT_PERIMETER_ID
    fence_id: int = Field(alias="fenceId")
    name: Optional[str] = None
    type: PerimeterType = "polygon"
    coordinates: Optional[List[List[float]]] = None   # 저장 순서, 열린 링
    center: Optional[List[float]] = None              # 원: [위도, 경도]
    radius: Optional[float] = None                    # 원: 미터
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    @property
    def is_draft(self) -> bool:
        # 로컬 캐시의 임시 키는 음수
        return self.id <= DRAFT_PERIMETER_ID

    def vertices(self) -> List[Vertex]:
        return [Vertex.from_storage(p) for p in (self.coordinates or [])]


class Rule(WireModel):
    """진입/이탈 감시 규칙"""
    id: int = 0
    fence_id: int = Field(alias="fenceId")
    name: str
    condition: RuleCondition = "enter"
    action: RuleAction = "notify"
    action_config: Optional[Dict[str, Any]] = Field(default=None, alias="actionConfig")
    is_default: bool = Field(default=False, alias="isDefault")
    created_at: Optional[str] = Field(default=None, alias="createdAt")


class GeofencePin(WireModel):
    """지오펜스에 꽂힌 작업 핀"""
    id: int = 0
    fence_id: int = Field(alias="fenceId")
    name: str
    coordinates: List[float]                          # [위도, 경도]
    status: Literal["pending", "in_progress", "completed", "canceled"] = "pending"
    responsible_id: Optional[int] = Field(default=None, alias="responsibleId")
    due_date: Optional[str] = Field(default=None, alias="dueDate")
    action_type: Optional[str] = Field(default=None, alias="actionType")
    created_at: Optional[str] = Field(default=None, alias="createdAt")


class Geofence(WireModel):
    """감시 영역 (퍼리미터/규칙/핀의 집계 루트)"""
    id: int = 0
    name: str
    description: Optional[str] = None
    color: str = "#f97316"
    status: Literal["active", "inactive"] = "active"
    company_id: Optional[int] = Field(default=None, alias="companyId")
    department_id: Optional[int] = Field(default=None, alias="departmentId")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    perimeters: List[Perimeter] = Field(default_factory=list)


# 펜스 생성 시 함께 만드는 기본 규칙 템플릿: (조건, 동작, 이름)
RULE_TEMPLATES: Dict[str, tuple] = {
    "monitor_entry": ("enter", "notify", "Monitor entry"),
    "monitor_exit": ("exit", "notify", "Monitor exit"),
    "block_entry": ("enter", "block", "Block entry"),
    "block_exit": ("exit", "block", "Block exit"),
}
DEFAULT_RULE_TEMPLATE = "monitor_entry"


def rule_from_template(fence_id: int, template: Optional[str] = None) -> Rule:
    """템플릿 이름으로 초안 규칙을 만듭니다. 모르는 템플릿은 monitor_entry 로 대체합니다."""
    condition, action, name = RULE_TEMPLATES.get(template or DEFAULT_RULE_TEMPLATE,
                                                 RULE_TEMPLATES[DEFAULT_RULE_TEMPLATE])
    return Rule(fence_id=fence_id, name=name, condition=condition, action=action)
