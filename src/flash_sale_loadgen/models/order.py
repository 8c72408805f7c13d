import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class SubmissionOutcome(str, Enum):
    ACCEPTED = "accepted"
    SOLD_OUT = "sold out"
    NOT_FOUND = "not found"
    RATE_LIMITED = "rate limited"
    QUEUE_OVERFLOW = "queue overflow"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class FixtureSet:
    """setup 阶段拉取的用户 id，所有虚拟用户只读共享"""

    user_ids: Tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.user_ids)

    def __bool__(self) -> bool:
        return bool(self.user_ids)

    def pick(self, rng: random.Random) -> str:
        return rng.choice(self.user_ids)


@dataclass(frozen=True)
class OrderSubmission:
    """一次下单请求，每次迭代新建"""

    user_id: str
    flash_sale_id: str
    quantity: int
    idempotency_key: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "flash_sale_id": self.flash_sale_id,
            "quantity": self.quantity,
        }

    def to_headers(self) -> Dict[str, str]:
        return {"Idempotency-Key": self.idempotency_key}


@dataclass(frozen=True)
class SubmissionResult:
    outcome: SubmissionOutcome
    status_code: int
    duration_ms: float
    order_id: Optional[str] = None
    status_url: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class PollResult:
    """轮询结束时的结果（Terminal）"""

    order_id: str
    attempts: int
    status: Optional[str]
    durations_ms: list = field(default_factory=list)
