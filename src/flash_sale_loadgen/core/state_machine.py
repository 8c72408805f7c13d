from enum import Enum
from typing import Dict, Optional, Set


class RunState(Enum):
    """整次压测的状态"""
    IDLE = "idle"
    SETUP = "setup"
    RUNNING = "running"
    DRAINING = "draining"  # 时间到，等进行中的迭代收尾
    COMPLETED = "completed"
    FAILED = "failed"


class PollState(Enum):
    """单个订单轮询的状态"""
    POLLING = "polling"
    TERMINAL = "terminal"
    TIMED_OUT = "timed_out"


RUN_TRANSITIONS: Dict[RunState, Set[RunState]] = {
    RunState.IDLE: {RunState.SETUP, RunState.FAILED},
    RunState.SETUP: {RunState.RUNNING, RunState.FAILED},
    RunState.RUNNING: {RunState.DRAINING, RunState.FAILED},
    RunState.DRAINING: {RunState.COMPLETED, RunState.FAILED},
    RunState.COMPLETED: set(),
    RunState.FAILED: set(),
}

POLL_TRANSITIONS: Dict[PollState, Set[PollState]] = {
    PollState.POLLING: {PollState.POLLING, PollState.TERMINAL, PollState.TIMED_OUT},
    PollState.TERMINAL: set(),
    PollState.TIMED_OUT: set(),
}

PENDING_STATUS = "pending"
TERMINAL_STATUSES = frozenset({"completed", "failed"})


class StateMachine:
    """简单的状态机，按转移表检查状态变化"""

    def __init__(self, initial_state: Enum, transitions: Dict[Enum, Set[Enum]]):
        self.state = initial_state
        self.transitions = transitions

    def can_transition(self, new_state: Enum) -> bool:
        """检查是否可以转移到新状态"""
        return new_state in self.transitions.get(self.state, set())

    def transition(self, new_state: Enum) -> bool:
        """尝试转移到新状态"""
        if self.can_transition(new_state):
            self.state = new_state
            return True
        return False

    def get_current_state(self) -> Enum:
        """获取当前状态"""
        return self.state


class PollCycle(StateMachine):
    """一次轮询过程：Polling(attempt) -> Terminal | TimedOut

    attempt 从 1 开始单调递增，最多到 max_attempts。
    """

    def __init__(self, order_id: str, max_attempts: int):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        super().__init__(PollState.POLLING, POLL_TRANSITIONS)
        self.order_id = order_id
        self.max_attempts = max_attempts
        self.attempt = 0
        self.last_status: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.state is not PollState.POLLING

    def next_attempt(self) -> int:
        if self.done or self.attempt >= self.max_attempts:
            raise RuntimeError(f"poll cycle for {self.order_id} is already {self.state.value}")
        self.attempt += 1
        return self.attempt

    def observe(self, status: Optional[str], request_ok: bool = True) -> PollState:
        """记录一次轮询结果并推进状态

        请求失败（非 200）或响应里没有字符串 status（网关 HTML、坏 JSON 等）
        都不算观察到状态，只消耗一次预算。
        """
        if request_ok and isinstance(status, str):
            self.last_status = status
            if status != PENDING_STATUS:
                self.transition(PollState.TERMINAL)
                return self.state

        if self.attempt >= self.max_attempts:
            self.transition(PollState.TIMED_OUT)
        return self.state
