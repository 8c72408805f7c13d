import asyncio
import random
from typing import Optional
from flash_sale_loadgen.config.logger import logger
from flash_sale_loadgen.config.settings import Settings
from flash_sale_loadgen.core.checks import (
    CHECK_ORDER_ID_PRESENT,
    CHECK_ORDER_TERMINATED,
    CheckRecorder,
)
from flash_sale_loadgen.core.classifier import SubmissionClassifier
from flash_sale_loadgen.core.errors import PollTimeoutError
from flash_sale_loadgen.core.key_pool import IdempotencyKeyPool, ReplaySampler
from flash_sale_loadgen.core.poller import CompletionPoller, Sleep
from flash_sale_loadgen.http_client.client import OrderServiceClient
from flash_sale_loadgen.models.order import (
    FixtureSet,
    OrderSubmission,
    SubmissionOutcome,
    SubmissionResult,
)


class VirtualUserExecutor:
    """虚拟用户执行器 - 在运行时长内不断重复一次完整迭代

    fixtures 和 key_pool 是只读共享的；checks 和 rng 归本用户独有。
    """

    def __init__(
        self,
        user_index: int,
        settings: Settings,
        fixtures: FixtureSet,
        key_pool: IdempotencyKeyPool,
        http_client: OrderServiceClient,
        checks: Optional[CheckRecorder] = None,
        rng: Optional[random.Random] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.user_index = user_index
        self.settings = settings
        self.fixtures = fixtures
        self.checks = checks or CheckRecorder()
        self.rng = rng or random.Random()
        self.sleep = sleep

        self.sampler = ReplaySampler(key_pool, settings.REPLAY_PROBABILITY, self.rng)
        self.classifier = SubmissionClassifier(http_client, self.checks)
        self.poller = CompletionPoller(
            http_client,
            self.checks,
            max_attempts=settings.MAX_POLL_ATTEMPTS,
            interval=settings.POLL_INTERVAL,
            sleep=sleep,
        )

    async def run(self, stop_event: asyncio.Event) -> CheckRecorder:
        """循环执行迭代，直到 stop_event 被设置

        只在迭代之间检查停止信号，正在轮询的迭代会跑完或自己超时。
        """
        logger.debug("Virtual user starting", user_index=self.user_index)

        while not stop_event.is_set():
            try:
                await self.run_iteration()
            except Exception as e:
                self.checks.errored_iterations += 1
                logger.error(
                    "Iteration failed with unexpected error",
                    user_index=self.user_index,
                    error=str(e),
                    exc_info=True,
                )

        logger.debug(
            "Virtual user stopped",
            user_index=self.user_index,
            iterations=self.checks.iterations,
        )
        return self.checks

    async def run_iteration(self) -> Optional[SubmissionResult]:
        """一次迭代：选用户 -> 选幂等键 -> 提交 -> 仅 ACCEPTED 时轮询"""

        if not self.fixtures:
            # 空操作：不发请求、不记检查、不睡；只让出一次事件循环
            self.checks.noop_iterations += 1
            await asyncio.sleep(0)
            return None

        self.checks.iterations += 1

        # 1. 构造请求
        selection = self.sampler.select_key()
        if selection.replayed:
            self.checks.replayed_keys += 1

        submission = OrderSubmission(
            user_id=self.fixtures.pick(self.rng),
            flash_sale_id=self.settings.FLASH_SALE_ID,
            quantity=self.settings.QUANTITY,
            idempotency_key=selection.key,
        )

        # 2. 提交并分类
        result = await self.classifier.submit(submission)

        # 3. 只有 ACCEPTED 才轮询
        if result.outcome is SubmissionOutcome.ACCEPTED:
            await self._await_completion(result)

        await self.sleep(self.settings.THINK_TIME)
        return result

    async def _await_completion(self, result: SubmissionResult) -> None:
        if not self.checks.check(CHECK_ORDER_ID_PRESENT, result.order_id is not None):
            logger.warning(
                "Accepted response without order_id",
                user_index=self.user_index,
            )
            return

        try:
            poll_result = await self.poller.poll(result.order_id, result.status_url)
        except PollTimeoutError as e:
            self.checks.poll_timeouts += 1
            self.checks.check(CHECK_ORDER_TERMINATED, False)
            logger.warning(
                "Order did not reach a terminal status",
                user_index=self.user_index,
                order_id=e.order_id,
                attempts=e.attempts,
                last_status=e.last_status,
            )
            return

        self.checks.check(CHECK_ORDER_TERMINATED, True)
        logger.debug(
            "Order reached terminal status",
            user_index=self.user_index,
            order_id=poll_result.order_id,
            status=poll_result.status,
            attempts=poll_result.attempts,
        )
