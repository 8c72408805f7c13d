from flash_sale_loadgen.config.logger import logger
from flash_sale_loadgen.http_client.client import HTTPResult, OrderServiceClient
from flash_sale_loadgen.models.order import FixtureSet


def fixtures_from_response(result: HTTPResult) -> FixtureSet:
    """从 GET /users 的响应里取出用户 id；没有数据时返回空集合"""
    if result.status_code != 200 or not isinstance(result.body, list):
        return FixtureSet()

    user_ids = []
    for record in result.body:
        if isinstance(record, dict) and record.get("id") is not None:
            user_ids.append(str(record["id"]))
    return FixtureSet(tuple(user_ids))


class FixtureLoader:
    """setup 阶段拉取一次用户列表，结果只读共享给所有虚拟用户"""

    def __init__(self, http_client: OrderServiceClient):
        self.http_client = http_client

    async def load(self) -> FixtureSet:
        result = await self.http_client.list_users()
        fixtures = fixtures_from_response(result)

        if not fixtures:
            # 不让整次运行失败：每次迭代都会变成空操作
            logger.warning(
                "No users returned by fixture endpoint, iterations will be no-ops",
                status_code=result.status_code,
                error=result.error,
            )
        else:
            logger.info("Fixtures loaded", users=len(fixtures))
        return fixtures
