class LoadgenError(Exception):
    """压测工具的基础异常"""


class PollTimeoutError(LoadgenError):
    """轮询次数用完订单仍是 pending，本次迭代判定失败"""

    def __init__(self, order_id: str, attempts: int, last_status=None):
        self.order_id = order_id
        self.attempts = attempts
        self.last_status = last_status
        super().__init__(
            f"order {order_id} still {last_status or 'pending'} after {attempts} polls"
        )
