import asyncio
from typing import Awaitable, Callable, Optional
from flash_sale_loadgen.config.logger import logger
from flash_sale_loadgen.core.checks import (
    CHECK_STATUS_REQUEST_OK,
    CHECK_TERMINAL_STATUS,
    CheckRecorder,
)
from flash_sale_loadgen.core.errors import PollTimeoutError
from flash_sale_loadgen.core.state_machine import (
    TERMINAL_STATUSES,
    PollCycle,
    PollState,
)
from flash_sale_loadgen.http_client.client import OrderServiceClient
from flash_sale_loadgen.models.order import PollResult


Sleep = Callable[[float], Awaitable[None]]


def status_path(order_id: str, status_url: Optional[str] = None) -> str:
    return status_url or f"/orders/{order_id}/status"


class CompletionPoller:
    """固定间隔轮询订单状态，直到终态或次数用完

    间隔是固定节奏，不做退避。单次请求失败不提前退出，继续下一次轮询。
    """

    def __init__(
        self,
        http_client: OrderServiceClient,
        checks: CheckRecorder,
        max_attempts: int = 10,
        interval: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self.http_client = http_client
        self.checks = checks
        self.max_attempts = max_attempts
        self.interval = interval
        self.sleep = sleep

    async def poll(self, order_id: str, status_url: Optional[str] = None) -> PollResult:
        cycle = PollCycle(order_id, self.max_attempts)
        path = status_path(order_id, status_url)
        durations = []

        while not cycle.done:
            attempt = cycle.next_attempt()
            await self.sleep(self.interval)

            result = await self.http_client.get_order_status(path)
            durations.append(result.duration_ms)
            self.checks.poll_latencies.append(result.duration_ms)

            request_ok = self.checks.check(CHECK_STATUS_REQUEST_OK, result.ok)
            status = result.body.get("status") if isinstance(result.body, dict) else None

            state = cycle.observe(status, request_ok=request_ok)
            logger.debug(
                "Order status polled",
                order_id=order_id,
                attempt=attempt,
                status_code=result.status_code,
                status=status,
                state=state.value,
            )

        if cycle.state is PollState.TIMED_OUT:
            raise PollTimeoutError(order_id, cycle.attempt, cycle.last_status)

        self.checks.check(CHECK_TERMINAL_STATUS, cycle.last_status in TERMINAL_STATUSES)
        if cycle.last_status == "failed":
            logger.debug(
                "Order failed",
                order_id=order_id,
                result=result.body.get("result") if isinstance(result.body, dict) else None,
            )

        return PollResult(
            order_id=order_id,
            attempts=cycle.attempt,
            status=cycle.last_status,
            durations_ms=durations,
        )
