"""locust 版本的下单压测

与 asyncio 版共用配置、幂等键池、结果分类和轮询状态机；汇总交给 locust 自己的统计。
每个提交按结果分别计入 "submit_order [<outcome>]"，订单收敛情况计入 "order_completion"。

    locust -f src/flash_sale_loadgen/locustfile.py --headless -u 150 -r 150 -t 30s \
        --host http://localhost:3000
"""
import random
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from locust import HttpUser, events, task

from flash_sale_loadgen.config.logger import logger
from flash_sale_loadgen.config.settings import Settings
from flash_sale_loadgen.core.classifier import STATUS_OUTCOMES, classify_status
from flash_sale_loadgen.core.errors import PollTimeoutError
from flash_sale_loadgen.core.fixtures import fixtures_from_response
from flash_sale_loadgen.core.key_pool import IdempotencyKeyPool, ReplaySampler
from flash_sale_loadgen.core.poller import status_path
from flash_sale_loadgen.core.state_machine import TERMINAL_STATUSES, PollCycle, PollState
from flash_sale_loadgen.http_client.client import HTTPResult
from flash_sale_loadgen.models.order import FixtureSet, OrderSubmission, SubmissionOutcome


SUBMIT_NAME = "submit_order"
STATUS_NAME = "order_status"
COMPLETION_NAME = "order_completion"


@dataclass(frozen=True)
class SharedRunData:
    """test_start 时构建一次，挂在 environment 上只读共享"""

    settings: Settings
    fixtures: FixtureSet
    key_pool: IdempotencyKeyPool


def _json_or_none(response):
    try:
        return response.json()
    except ValueError:
        return None


def prepare_run_data(environment, settings: Optional[Settings] = None) -> SharedRunData:
    settings = settings or Settings()
    host = (environment.host or settings.BASE_URL).rstrip("/")

    start = time.perf_counter()
    try:
        response = httpx.get(f"{host}/users", timeout=settings.REQUEST_TIMEOUT)
        body = _json_or_none(response) if response.content else None
        result = HTTPResult(response.status_code, body, (time.perf_counter() - start) * 1000)
    except httpx.HTTPError as e:
        result = HTTPResult(0, None, (time.perf_counter() - start) * 1000, str(e))

    run_data = SharedRunData(
        settings=settings,
        fixtures=fixtures_from_response(result),
        key_pool=IdempotencyKeyPool.build(settings.KEY_POOL_SIZE),
    )
    environment.shared_run_data = run_data

    if not run_data.fixtures:
        logger.warning(
            "No users returned by fixture endpoint, iterations will be no-ops",
            status_code=result.status_code,
            error=result.error,
        )
    else:
        logger.info("Fixtures loaded", users=len(run_data.fixtures))
    return run_data


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    prepare_run_data(environment)


class FlashSaleUser(HttpUser):

    def __init__(self, environment):
        self.run_data = getattr(environment, "shared_run_data", None) or prepare_run_data(environment)
        if self.host is None:
            self.host = environment.host or self.run_data.settings.BASE_URL
        super().__init__(environment)

        self.rng = random.Random()
        self.sampler = ReplaySampler(
            self.run_data.key_pool, self.run_data.settings.REPLAY_PROBABILITY, self.rng
        )

    def wait_time(self):
        return self.run_data.settings.THINK_TIME if self.run_data.fixtures else 0

    @task
    def submit_order(self):
        settings = self.run_data.settings
        if not self.run_data.fixtures:
            return

        submission = OrderSubmission(
            user_id=self.run_data.fixtures.pick(self.rng),
            flash_sale_id=settings.FLASH_SALE_ID,
            quantity=settings.QUANTITY,
            idempotency_key=self.sampler.select_key().key,
        )

        order_id = None
        status_url = None
        with self.client.post(
            "/orders",
            json=submission.to_payload(),
            headers=submission.to_headers(),
            catch_response=True,
            name=SUBMIT_NAME,
        ) as resp:
            outcome = classify_status(resp.status_code)
            # 按结果拆分统计，保留各结果的分布
            resp.request_meta["name"] = f"{SUBMIT_NAME} [{outcome.value}]"

            if resp.status_code not in STATUS_OUTCOMES:
                resp.failure(f"unexpected status {resp.status_code}")
                return

            if outcome is SubmissionOutcome.ACCEPTED:
                body = _json_or_none(resp)
                if isinstance(body, dict):
                    order_id = body.get("order_id")
                    status_url = body.get("status_url")
                if order_id is None:
                    resp.failure("order id missing")
                    return

            resp.success()

        if order_id is not None:
            self._poll(str(order_id), status_url if isinstance(status_url, str) else None)

    def _poll(self, order_id: str, status_url: Optional[str] = None):
        settings = self.run_data.settings
        cycle = PollCycle(order_id, settings.MAX_POLL_ATTEMPTS)
        path = status_path(order_id, status_url)
        start = time.perf_counter()

        while not cycle.done:
            cycle.next_attempt()
            time.sleep(settings.POLL_INTERVAL)

            with self.client.get(path, catch_response=True, name=STATUS_NAME) as r:
                request_ok = r.status_code == 200
                status = None
                if request_ok:
                    body = _json_or_none(r)
                    status = body.get("status") if isinstance(body, dict) else None
                    r.success()
                else:
                    r.failure(f"status request failed: {r.status_code}")
                cycle.observe(status, request_ok=request_ok)

        exception = None
        if cycle.state is PollState.TIMED_OUT:
            exception = PollTimeoutError(order_id, cycle.attempt, cycle.last_status)
        elif cycle.last_status not in TERMINAL_STATUSES:
            exception = ValueError(f"unknown terminal status {cycle.last_status!r}")

        self.environment.events.request.fire(
            request_type="POLL",
            name=COMPLETION_NAME,
            response_time=(time.perf_counter() - start) * 1000,
            response_length=0,
            exception=exception,
            context={"order_id": order_id, "attempts": cycle.attempt},
        )
