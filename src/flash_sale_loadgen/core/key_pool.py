import random
import uuid
from dataclasses import dataclass
from typing import Tuple


def new_key() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class IdempotencyKeyPool:
    """预生成的幂等键，setup 后不再修改；"复用"只是再读一次已有的键"""

    keys: Tuple[str, ...] = ()

    @classmethod
    def build(cls, size: int) -> "IdempotencyKeyPool":
        if size < 0:
            raise ValueError("pool size must be >= 0")
        keys = set()
        while len(keys) < size:
            keys.add(new_key())
        return cls(tuple(keys))

    def __len__(self) -> int:
        return len(self.keys)


@dataclass(frozen=True)
class KeySelection:
    key: str
    replayed: bool


class ReplaySampler:
    """按概率从池里取一个旧键（模拟客户端重试），否则生成新键

    每次调用是独立的伯努利试验，除了只读的池之外不保存任何状态。
    """

    def __init__(self, pool: IdempotencyKeyPool, probability: float, rng: random.Random):
        if not 0.0 <= probability <= 1.0:
            raise ValueError("replay probability must be within [0, 1]")
        self.pool = pool
        self.probability = probability
        self.rng = rng

    def select_key(self) -> KeySelection:
        # 空池退化为总是生成新键
        if self.pool.keys and self.rng.random() < self.probability:
            return KeySelection(self.rng.choice(self.pool.keys), True)
        return KeySelection(new_key(), False)
