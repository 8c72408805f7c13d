import asyncio
import random
import time
from typing import Callable, List, Optional
from flash_sale_loadgen.config.logger import logger
from flash_sale_loadgen.config.settings import Settings
from flash_sale_loadgen.core.checks import CheckRecorder, RunSummary
from flash_sale_loadgen.core.executor import VirtualUserExecutor
from flash_sale_loadgen.core.fixtures import FixtureLoader
from flash_sale_loadgen.core.key_pool import IdempotencyKeyPool
from flash_sale_loadgen.core.poller import Sleep
from flash_sale_loadgen.core.state_machine import RunState, RUN_TRANSITIONS, StateMachine
from flash_sale_loadgen.http_client.client import OrderServiceClient
from flash_sale_loadgen.models.order import FixtureSet


class RunOrchestrator:
    """压测编排器 - setup、启动虚拟用户、计时停止、收尾汇总"""

    def __init__(
        self,
        settings: Settings,
        http_client: OrderServiceClient,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settings = settings
        self.http_client = http_client
        self.sleep = sleep

        # 运行时状态
        self.state_machine = StateMachine(RunState.IDLE, RUN_TRANSITIONS)
        self.fixtures: Optional[FixtureSet] = None
        self.key_pool: Optional[IdempotencyKeyPool] = None
        self.executors: List[VirtualUserExecutor] = []
        self.progress_callbacks: List[Callable] = []

    def register_progress_callback(self, callback: Callable[[RunState], None]):
        """注册运行阶段变化的回调"""
        self.progress_callbacks.append(callback)

    def _set_state(self, state: RunState) -> None:
        if not self.state_machine.transition(state):
            raise RuntimeError(
                f"invalid run state transition: "
                f"{self.state_machine.get_current_state().value} -> {state.value}"
            )
        logger.info("Run state changed", state=state.value)
        for callback in self.progress_callbacks:
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Error in progress callback: {e}")

    async def setup(self) -> None:
        """setup 阶段：只执行一次，结果之后只读"""
        self._set_state(RunState.SETUP)
        self.fixtures = await FixtureLoader(self.http_client).load()
        self.key_pool = IdempotencyKeyPool.build(self.settings.KEY_POOL_SIZE)
        logger.info(
            "Setup finished",
            users=len(self.fixtures),
            key_pool_size=len(self.key_pool),
        )

    def _worker_rng(self, user_index: int) -> random.Random:
        if self.settings.RANDOM_SEED is None:
            return random.Random()
        return random.Random(self.settings.RANDOM_SEED + user_index)

    async def run(self) -> RunSummary:
        """执行完整压测并返回汇总"""
        start = time.perf_counter()
        try:
            await self.setup()

            stop_event = asyncio.Event()
            self.executors = [
                VirtualUserExecutor(
                    user_index=i,
                    settings=self.settings,
                    fixtures=self.fixtures,
                    key_pool=self.key_pool,
                    http_client=self.http_client,
                    rng=self._worker_rng(i),
                    sleep=self.sleep,
                )
                for i in range(self.settings.VUS)
            ]

            self._set_state(RunState.RUNNING)
            logger.info(
                "Virtual users starting",
                vus=self.settings.VUS,
                duration_s=self.settings.DURATION,
            )
            tasks = [asyncio.create_task(e.run(stop_event)) for e in self.executors]

            # 时间到只停止发起新迭代，进行中的迭代自然收尾
            await asyncio.sleep(self.settings.DURATION)
            stop_event.set()
            self._set_state(RunState.DRAINING)

            drained = await self._drain(tasks)

            self._set_state(RunState.COMPLETED)
        except Exception:
            if self.state_machine.can_transition(RunState.FAILED):
                self._set_state(RunState.FAILED)
            raise

        recorder = CheckRecorder.combine(e.checks for e in self.executors)
        summary = RunSummary.from_recorder(
            recorder,
            vus=self.settings.VUS,
            duration_s=self.settings.DURATION,
            elapsed_s=time.perf_counter() - start,
            fixtures=len(self.fixtures),
            key_pool_size=len(self.key_pool),
            drained=drained,
        )
        logger.info(
            "Run completed",
            iterations=summary.iterations,
            poll_timeouts=summary.poll_timeouts,
            drained=drained,
        )
        return summary

    async def _drain(self, tasks: List[asyncio.Task]) -> bool:
        """等待所有虚拟用户收尾；超过 GRACEFUL_STOP 的强制取消"""
        done, pending = await asyncio.wait(tasks, timeout=self.settings.GRACEFUL_STOP)

        for task in pending:
            task.cancel()
        if pending:
            logger.warning(
                "Graceful stop expired, cancelling virtual users",
                cancelled=len(pending),
            )
            await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error("Virtual user crashed", error=str(task.exception()))

        return not pending
