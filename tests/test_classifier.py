import httpx
import pytest

from conftest import FakeOrderService, make_settings
from flash_sale_loadgen.core.checks import CHECK_VALID_RESPONSE, CheckRecorder
from flash_sale_loadgen.core.classifier import (
    NAMED_OUTCOMES,
    SubmissionClassifier,
    classify_status,
)
from flash_sale_loadgen.http_client.client import OrderServiceClient
from flash_sale_loadgen.models.order import OrderSubmission, SubmissionOutcome


def _submission(key="key-1"):
    return OrderSubmission(
        user_id="user-1",
        flash_sale_id="sale-1",
        quantity=1,
        idempotency_key=key,
    )


@pytest.mark.parametrize(
    "status_code, outcome",
    [
        (202, SubmissionOutcome.ACCEPTED),
        (409, SubmissionOutcome.SOLD_OUT),
        (404, SubmissionOutcome.NOT_FOUND),
        (429, SubmissionOutcome.RATE_LIMITED),
        (503, SubmissionOutcome.QUEUE_OVERFLOW),
        (200, SubmissionOutcome.UNEXPECTED),
        (201, SubmissionOutcome.UNEXPECTED),
        (500, SubmissionOutcome.UNEXPECTED),
        (0, SubmissionOutcome.UNEXPECTED),
    ],
)
def test_classify_status(status_code, outcome):
    assert classify_status(status_code) is outcome


def test_named_outcomes_are_distinct():
    codes = [202, 409, 404, 429, 503]
    assert len({classify_status(c) for c in codes}) == len(codes)


@pytest.mark.asyncio
async def test_accepted_submission_carries_order_id_and_key_header():
    service = FakeOrderService(submit_statuses=[202])
    checks = CheckRecorder()

    async with OrderServiceClient(make_settings(), transport=service.transport()) as client:
        result = await SubmissionClassifier(client, checks).submit(_submission("abc-key"))

    assert result.outcome is SubmissionOutcome.ACCEPTED
    assert result.order_id == "order-0"
    assert result.status_url == "/orders/order-0/status"
    assert service.submissions == [
        {
            "body": {"user_id": "user-1", "flash_sale_id": "sale-1", "quantity": 1},
            "idempotency_key": "abc-key",
        }
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [202, 409, 404, 429, 503, 500])
async def test_every_submission_emits_validity_and_one_check_per_outcome(status_code):
    service = FakeOrderService(submit_statuses=[status_code])
    checks = CheckRecorder()

    async with OrderServiceClient(make_settings(), transport=service.transport()) as client:
        result = await SubmissionClassifier(client, checks).submit(_submission())

    valid = checks.checks[CHECK_VALID_RESPONSE]
    assert valid.total == 1
    assert valid.passes == (1 if status_code != 500 else 0)

    for named in NAMED_OUTCOMES:
        counter = checks.checks[named.value]
        assert counter.total == 1
        assert counter.passes == (1 if named is result.outcome else 0)

    assert checks.outcomes == {result.outcome.value: 1}
    assert len(checks.submit_latencies) == 1


@pytest.mark.asyncio
async def test_rejection_keeps_error_code_and_no_order_id():
    service = FakeOrderService(submit_statuses=[409])
    checks = CheckRecorder()

    async with OrderServiceClient(make_settings(), transport=service.transport()) as client:
        result = await SubmissionClassifier(client, checks).submit(_submission())

    assert result.outcome is SubmissionOutcome.SOLD_OUT
    assert result.order_id is None
    assert result.error_code == "E409"


@pytest.mark.asyncio
async def test_network_error_is_unexpected():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    checks = CheckRecorder()
    async with OrderServiceClient(make_settings(), transport=httpx.MockTransport(refuse)) as client:
        result = await SubmissionClassifier(client, checks).submit(_submission())

    assert result.status_code == 0
    assert result.outcome is SubmissionOutcome.UNEXPECTED
    assert checks.checks[CHECK_VALID_RESPONSE].fails == 1
