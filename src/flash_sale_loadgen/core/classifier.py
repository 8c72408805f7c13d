from flash_sale_loadgen.config.logger import logger
from flash_sale_loadgen.core.checks import CHECK_VALID_RESPONSE, CheckRecorder
from flash_sale_loadgen.http_client.client import HTTPResult, OrderServiceClient
from flash_sale_loadgen.models.order import (
    OrderSubmission,
    SubmissionOutcome,
    SubmissionResult,
)


# 状态码 -> 结果；不在表里的一律 UNEXPECTED
STATUS_OUTCOMES = {
    202: SubmissionOutcome.ACCEPTED,
    409: SubmissionOutcome.SOLD_OUT,
    404: SubmissionOutcome.NOT_FOUND,
    429: SubmissionOutcome.RATE_LIMITED,
    503: SubmissionOutcome.QUEUE_OVERFLOW,
}

NAMED_OUTCOMES = tuple(STATUS_OUTCOMES.values())


def classify_status(status_code: int) -> SubmissionOutcome:
    return STATUS_OUTCOMES.get(status_code, SubmissionOutcome.UNEXPECTED)


def _body_field(body, key):
    if isinstance(body, dict):
        value = body.get(key)
        return str(value) if value is not None else None
    return None


class SubmissionClassifier:
    """发送一次下单请求，并把响应状态码映射成结果

    每次调用都会记录一个 "valid response" 检查，外加每个具名结果各一个检查。
    """

    def __init__(self, http_client: OrderServiceClient, checks: CheckRecorder):
        self.http_client = http_client
        self.checks = checks

    async def submit(self, submission: OrderSubmission) -> SubmissionResult:
        result = await self.http_client.submit_order(submission)
        return self.classify(result)

    def classify(self, result: HTTPResult) -> SubmissionResult:
        outcome = classify_status(result.status_code)

        self.checks.check(CHECK_VALID_RESPONSE, result.status_code in STATUS_OUTCOMES)
        for named in NAMED_OUTCOMES:
            self.checks.check(named.value, outcome is named)
        self.checks.count_outcome(outcome.value)
        self.checks.submit_latencies.append(result.duration_ms)

        order_id = None
        status_url = None
        error_code = None
        if outcome is SubmissionOutcome.ACCEPTED:
            order_id = _body_field(result.body, "order_id")
            status_url = _body_field(result.body, "status_url")
        else:
            error_code = _body_field(result.body, "code")
            logger.debug(
                "Order not accepted",
                status_code=result.status_code,
                outcome=outcome.value,
                error_code=error_code,
                error=result.error,
            )

        return SubmissionResult(
            outcome=outcome,
            status_code=result.status_code,
            duration_ms=result.duration_ms,
            order_id=order_id,
            status_url=status_url,
            error_code=error_code,
        )
