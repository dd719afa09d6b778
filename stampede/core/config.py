import os
from typing import List
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """실행 엔진 설정"""

    # 로깅 설정
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # 스케줄러 설정
    SCHEDULER_TICK_INTERVAL: float = float(os.getenv("SCHEDULER_TICK_INTERVAL", "0.1"))  # 초

    # threshold 평가 설정
    THRESHOLD_EVAL_INTERVAL: float = float(os.getenv("THRESHOLD_EVAL_INTERVAL", "1.0"))  # 초

    # 종료 설정
    GRACEFUL_STOP_SECONDS: float = float(os.getenv("GRACEFUL_STOP_SECONDS", "30"))

    # HTTP 설정
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "60"))

    # 리포트 설정
    SUMMARY_TREND_PERCENTILES: str = os.getenv("SUMMARY_TREND_PERCENTILES", "50,90,95,99")
    REPORT_TIMEZONE: str = os.getenv("REPORT_TIMEZONE", "UTC")

    @classmethod
    def get_trend_percentiles(cls) -> List[float]:
        """요약에 포함할 Trend 백분위수 목록"""
        return [float(p) for p in cls.SUMMARY_TREND_PERCENTILES.split(",") if p.strip()]

    @classmethod
    def get_run_config(cls) -> dict:
        """실행 설정을 딕셔너리로 반환"""
        return {
            "scheduler_tick_interval": cls.SCHEDULER_TICK_INTERVAL,
            "threshold_eval_interval": cls.THRESHOLD_EVAL_INTERVAL,
            "graceful_stop": cls.GRACEFUL_STOP_SECONDS,
            "http_timeout": cls.HTTP_TIMEOUT_SECONDS,
            "trend_percentiles": cls.get_trend_percentiles(),
            "report_timezone": cls.REPORT_TIMEZONE,
        }

    @classmethod
    def validate_run_config(cls) -> bool:
        """실행 설정 유효성 검증"""
        try:
            if cls.SCHEDULER_TICK_INTERVAL <= 0 or cls.THRESHOLD_EVAL_INTERVAL <= 0:
                return False

            if cls.GRACEFUL_STOP_SECONDS < 0 or cls.HTTP_TIMEOUT_SECONDS <= 0:
                return False

            if not all(0 < p < 100 for p in cls.get_trend_percentiles()):
                return False

            return True
        except (ValueError, TypeError):
            return False


settings = Settings()
