from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class RunState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StopReason(str, Enum):
    COMPLETED = "completed"              # 모든 stage 종료
    THRESHOLD_ABORT = "threshold_abort"  # abort_on_fail threshold 실패
    CANCELLED = "cancelled"              # 외부 취소 신호
    INTERNAL_ERROR = "internal_error"    # 엔진 불변식 위반


class ThresholdResult(BaseModel):
    """threshold 평가 결과"""
    metric: str = Field(..., description="대상 메트릭 이름")
    expression: str = Field(..., description="원본 threshold 식")
    passed: bool = Field(..., description="통과 여부")
    observed: Optional[float] = Field(None, description="평가 시점의 집계값")
    abort_on_fail: bool = Field(False, description="실패 시 실행 중단 여부")
    triggered_abort: bool = Field(False, description="이 threshold로 인해 실행이 중단되었는지 여부")
    no_data: bool = Field(False, description="평가 시점에 샘플이 없었는지 여부")

    @property
    def name(self) -> str:
        return f"{self.metric}: {self.expression}"


class VuSummary(BaseModel):
    """가상 사용자 요약"""
    max: int = Field(..., description="동시 VU 상한 (vus_max)")
    peak: int = Field(..., description="실제 최대 동시 VU 수")
    interrupted: int = Field(0, description="graceful stop 시간 내에 끝나지 않아 강제 종료된 VU 수")


class RunReport(BaseModel):
    """실행 종료 후 생성되는 최종 리포트 (읽기 전용)"""
    model_config = {"frozen": True}

    state: RunState
    passed: bool
    aborted: bool = Field(False, description="조기 종료 여부")
    stop_reason: StopReason
    abort_reason: Optional[str] = None
    started_at: datetime
    finished_at: datetime
    duration_seconds: float
    vus: VuSummary
    metrics: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    thresholds: List[ThresholdResult] = Field(default_factory=list)
    dropped_samples: int = 0

    @property
    def failed_thresholds(self) -> List[ThresholdResult]:
        return [result for result in self.thresholds if not result.passed]
