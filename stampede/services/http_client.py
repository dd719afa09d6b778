"""
HTTP 클라이언트 모듈

시나리오의 iteration 함수가 사용하는 HTTP 요청 협력자입니다.
요청마다 http_reqs, http_req_duration, http_req_failed 메트릭을 기록하며,
연결 수준 실패는 NetworkError로 변환합니다. 자동 재시도는 하지 않습니다.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from stampede.common.exception import NetworkError
from stampede.metrics.metric_registry import MetricRegistry


logger = logging.getLogger(__name__)


@dataclass
class HttpClientConfig:
    """HTTP 클라이언트 설정"""
    base_url: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    timeout_seconds: float = 60.0
    max_connections: int = 100


@dataclass
class HttpResponse:
    """요청 결과"""
    status: int
    duration: float          # ms
    body: str
    headers: Dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        return json.loads(self.body)


class HttpClient:
    """메트릭을 기록하는 비동기 HTTP 클라이언트"""

    def __init__(self, registry: MetricRegistry, config: Optional[HttpClientConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.registry = registry
        self.config = config or HttpClientConfig()
        self._transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """비동기 컨텍스트 매니저 진입"""
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """비동기 컨텍스트 매니저 종료"""
        await self.aclose()

    async def aclose(self):
        if self.client:
            await self.client.aclose()
            self.client = None

    async def _ensure_client(self):
        """HTTP 클라이언트 생성 (필요시)"""
        if self.client is None or self.client.is_closed:
            timeout = httpx.Timeout(self.config.timeout_seconds)
            limits = httpx.Limits(max_connections=self.config.max_connections,
                                  max_keepalive_connections=self.config.max_connections)
            self.client = httpx.AsyncClient(
                base_url=self.config.base_url or "",
                headers=self.config.headers,
                timeout=timeout,
                limits=limits,
                transport=self._transport,
            )

    async def request(self, method: str, url: str, **options) -> HttpResponse:
        """
        HTTP 요청 실행

        Args:
            method: HTTP 메서드
            url: 절대 URL 또는 base_url 기준 상대 경로
            **options: httpx 요청 옵션 (headers, params, json, content 등)

        Returns:
            HttpResponse: 상태 코드, 소요 시간(ms), 본문

        Raises:
            NetworkError: 연결 실패, 타임아웃 등 응답을 받지 못한 경우
        """
        await self._ensure_client()

        start = time.perf_counter()
        try:
            response = await self.client.request(method.upper(), url, **options)
        except httpx.TransportError as e:
            duration = (time.perf_counter() - start) * 1000
            self.registry.add_counter("http_reqs")
            self.registry.add_rate("http_req_failed", True)
            logger.debug(f"{method.upper()} {url} failed after {duration:.1f}ms: {type(e).__name__}: {e}")
            raise NetworkError(f"{method.upper()} {url} failed: {type(e).__name__}: {e}", url=url) from e

        duration = (time.perf_counter() - start) * 1000
        failed = not (200 <= response.status_code < 400)

        self.registry.add_counter("http_reqs")
        self.registry.add_trend("http_req_duration", duration)
        self.registry.add_rate("http_req_failed", failed)

        return HttpResponse(
            status=response.status_code,
            duration=duration,
            body=response.text,
            headers=dict(response.headers),
        )

    async def get(self, url: str, **options) -> HttpResponse:
        return await self.request("GET", url, **options)

    async def post(self, url: str, **options) -> HttpResponse:
        return await self.request("POST", url, **options)

    async def put(self, url: str, **options) -> HttpResponse:
        return await self.request("PUT", url, **options)

    async def patch(self, url: str, **options) -> HttpResponse:
        return await self.request("PATCH", url, **options)

    async def delete(self, url: str, **options) -> HttpResponse:
        return await self.request("DELETE", url, **options)
