import asyncio
import json

import httpx
import pytest

from flash_sale_loadgen.config.logger import setup_logging
from flash_sale_loadgen.config.settings import Settings


def make_settings(**overrides) -> Settings:
    values = {
        "BASE_URL": "http://target.test",
        "VUS": 2,
        "DURATION": 0.05,
        "POLL_INTERVAL": 0,
        "THINK_TIME": 0,
        "GRACEFUL_STOP": 5,
        "RANDOM_SEED": 7,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeOrderService:
    """模拟下单服务：GET /users, POST /orders, GET /orders/{id}/status

    poll_statuses 是每个订单各自的状态序列，用完后重复最后一个；
    序列里的 int 表示该次轮询返回对应的 HTTP 错误码，bytes 表示原样返回的 200 响应体。
    status_url_template 决定 202 里返回的轮询地址。
    """

    def __init__(
        self,
        users=None,
        users_status=200,
        submit_statuses=(202,),
        poll_statuses=("completed",),
        include_order_id=True,
        status_url_template="/orders/{}/status",
    ):
        self.users = [{"id": "user-1", "created_at": "2024-01-01T00:00:00Z"}] if users is None else users
        self.users_status = users_status
        self.submit_statuses = list(submit_statuses)
        self.poll_statuses = list(poll_statuses)
        self.include_order_id = include_order_id
        self.status_url_template = status_url_template

        self.user_calls = 0
        self.submissions = []
        self.polls = []
        self.polled_paths = []
        self._poll_counts = {}
        self._status_routes = {}

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path

        if request.method == "GET" and path == "/users":
            self.user_calls += 1
            return httpx.Response(self.users_status, json=self.users)

        if request.method == "POST" and path == "/orders":
            return self._submit(request)

        if request.method == "GET" and path in self._status_routes:
            self.polled_paths.append(path)
            return self._status(self._status_routes[path])

        if request.method == "GET" and path.startswith("/orders/") and path.endswith("/status"):
            self.polled_paths.append(path)
            return self._status(path.split("/")[2])

        return httpx.Response(404, json={"code": "NOT_FOUND", "message": "no route"})

    def _submit(self, request):
        index = len(self.submissions)
        status = self.submit_statuses[min(index, len(self.submit_statuses) - 1)]
        self.submissions.append(
            {
                "body": json.loads(request.content),
                "idempotency_key": request.headers.get("Idempotency-Key"),
            }
        )

        if status != 202:
            return httpx.Response(status, json={"code": f"E{status}", "message": "rejected"})

        order_id = f"order-{index}"
        status_url = self.add_status_route(order_id)
        body = {"status": "pending", "status_url": status_url}
        if self.include_order_id:
            body["order_id"] = order_id
        return httpx.Response(202, json=body)

    def add_status_route(self, order_id):
        path = self.status_url_template.format(order_id)
        self._status_routes[path] = order_id
        return path

    def _status(self, order_id):
        count = self._poll_counts.get(order_id, 0)
        self._poll_counts[order_id] = count + 1
        self.polls.append(order_id)

        status = self.poll_statuses[min(count, len(self.poll_statuses) - 1)]
        if isinstance(status, int):
            return httpx.Response(status, json={"code": "INTERNAL_ERROR", "message": "boom"})
        if isinstance(status, bytes):
            return httpx.Response(200, content=status)

        body = {"order_id": order_id, "status": status, "result": None}
        if status == "failed":
            body["result"] = {"message": "Insufficient stock"}
        return httpx.Response(200, json=body)


class FakeSleep:
    """记录睡眠时长，不真正等待，只让出一次事件循环"""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture(autouse=True, scope="session")
def quiet_logging():
    setup_logging("WARNING", "console")
