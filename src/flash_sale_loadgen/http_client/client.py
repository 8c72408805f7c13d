import httpx
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from flash_sale_loadgen.config.logger import logger
from flash_sale_loadgen.config.settings import Settings
from flash_sale_loadgen.models.order import OrderSubmission


@dataclass(frozen=True)
class HTTPResult:
    """一次 HTTP 调用的结果；网络异常时 status_code 为 0"""

    status_code: int
    body: Any
    duration_ms: float
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200


class OrderServiceClient:
    """异步 HTTP 客户端，用于调用下单服务

    所有虚拟用户共用一个 httpx.AsyncClient（连接池）。不做自动重试：
    压测中的"重试"只来自新的迭代复用幂等键。
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = settings.BASE_URL
        self.timeout = settings.REQUEST_TIMEOUT
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
            limits=httpx.Limits(max_connections=None, max_keepalive_connections=settings.VUS),
        )

    async def __aenter__(self) -> "OrderServiceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_users(self) -> HTTPResult:
        return await self._request("GET", "/users")

    async def submit_order(self, submission: OrderSubmission) -> HTTPResult:
        return await self._request(
            "POST",
            "/orders",
            json=submission.to_payload(),
            headers=submission.to_headers(),
        )

    async def get_order_status(self, status_path: str) -> HTTPResult:
        return await self._request("GET", status_path)

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> HTTPResult:
        start_time = time.perf_counter()

        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                headers=headers or {},
            )
        except httpx.TimeoutException as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.debug("Request timeout", method=method, path=path, error=str(e))
            return HTTPResult(0, None, duration_ms, f"Timeout after {self.timeout}s")
        except httpx.HTTPError as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.debug("Request error", method=method, path=path, error=str(e))
            return HTTPResult(0, None, duration_ms, str(e) or type(e).__name__)

        duration_ms = (time.perf_counter() - start_time) * 1000

        body = None
        error = None
        if response.content:
            try:
                body = response.json()
            except ValueError as e:
                error = f"JSON parse error: {e}"

        logger.debug(
            "HTTP call finished",
            method=method,
            path=path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        return HTTPResult(response.status_code, body, duration_ms, error)
