"""
파일 저장을 위한 범용 유틸리티 클래스
리포트 파일 저장 기능 제공
"""
from pathlib import Path
import logging

logger = logging.getLogger(__name__)


class FileWriter:
    """범용 파일 저장을 위한 유틸리티 클래스"""

    @staticmethod
    def write_to_file(content: str, file_path: str) -> str:
        """
        지정된 경로에 파일을 저장 (상위 디렉터리가 없으면 생성)

        Args:
            content: 저장할 파일 내용
            file_path: 저장할 파일 경로

        Returns:
            str: 저장된 파일의 전체 경로

        Raises:
            OSError: 파일 저장 실패시
        """
        target = Path(file_path)
        target.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(target, 'w', encoding='utf-8') as f:
                f.write(content)

            logger.info(f"Report written to {target}")
            return str(target.resolve())

        except OSError as e:
            logger.error(f"Failed to write report to {target}: {e}")
            raise
