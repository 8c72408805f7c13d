import pytest

from conftest import FakeOrderService, make_settings
from flash_sale_loadgen.core.fixtures import FixtureLoader
from flash_sale_loadgen.http_client.client import OrderServiceClient


async def _load(service):
    async with OrderServiceClient(make_settings(), transport=service.transport()) as client:
        return await FixtureLoader(client).load()


@pytest.mark.asyncio
async def test_user_ids_are_loaded_in_order():
    service = FakeOrderService(users=[{"id": "a"}, {"id": "b"}, {"id": "c", "created_at": "x"}])

    fixtures = await _load(service)

    assert fixtures.user_ids == ("a", "b", "c")
    assert service.user_calls == 1


@pytest.mark.asyncio
async def test_empty_user_list_gives_empty_fixtures():
    fixtures = await _load(FakeOrderService(users=[]))

    assert not fixtures
    assert len(fixtures) == 0


@pytest.mark.asyncio
async def test_error_status_degrades_to_empty_fixtures():
    fixtures = await _load(FakeOrderService(users={"code": "INTERNAL_ERROR"}, users_status=500))

    assert not fixtures


@pytest.mark.asyncio
async def test_records_without_id_are_skipped():
    fixtures = await _load(FakeOrderService(users=[{"id": "a"}, {"name": "no id"}, "junk"]))

    assert fixtures.user_ids == ("a",)
