import math
import statistics
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional


CHECK_VALID_RESPONSE = "valid response"
CHECK_STATUS_REQUEST_OK = "status request ok"
CHECK_TERMINAL_STATUS = "terminal status"
CHECK_ORDER_ID_PRESENT = "order id present"
CHECK_ORDER_TERMINATED = "order reached terminal status"


@dataclass
class CheckCounter:
    passes: int = 0
    fails: int = 0

    @property
    def total(self) -> int:
        return self.passes + self.fails

    @property
    def rate(self) -> float:
        return self.passes / self.total if self.total else 0.0


def _percentile(values: List[float], p: float) -> Optional[float]:
    if not values:
        return None
    values = sorted(values)
    k = (len(values) - 1) * (p / 100.0)
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return values[int(k)]
    return values[f] * (c - k) + values[c] * (k - f)


def latency_stats(values: List[float]) -> Dict[str, Optional[float]]:
    return {
        "count": len(values),
        "avg_ms": round(statistics.mean(values), 2) if values else None,
        "p95_ms": round(_percentile(values, 95), 2) if values else None,
        "max_ms": round(max(values), 2) if values else None,
    }


class CheckRecorder:
    """单个虚拟用户的检查结果和计数

    每个 worker 各持有一个，不跨 worker 共享；运行结束后由编排器合并。
    """

    def __init__(self):
        self.checks: Dict[str, CheckCounter] = {}
        self.outcomes: Dict[str, int] = {}
        self.iterations = 0
        self.noop_iterations = 0
        self.replayed_keys = 0
        self.poll_timeouts = 0
        self.errored_iterations = 0
        self.submit_latencies: List[float] = []
        self.poll_latencies: List[float] = []

    def check(self, name: str, passed: bool) -> bool:
        counter = self.checks.setdefault(name, CheckCounter())
        if passed:
            counter.passes += 1
        else:
            counter.fails += 1
        return passed

    def count_outcome(self, outcome: str) -> None:
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1

    def merge(self, other: "CheckRecorder") -> None:
        for name, counter in other.checks.items():
            mine = self.checks.setdefault(name, CheckCounter())
            mine.passes += counter.passes
            mine.fails += counter.fails
        for outcome, count in other.outcomes.items():
            self.outcomes[outcome] = self.outcomes.get(outcome, 0) + count
        self.iterations += other.iterations
        self.noop_iterations += other.noop_iterations
        self.replayed_keys += other.replayed_keys
        self.poll_timeouts += other.poll_timeouts
        self.errored_iterations += other.errored_iterations
        self.submit_latencies.extend(other.submit_latencies)
        self.poll_latencies.extend(other.poll_latencies)

    @classmethod
    def combine(cls, recorders: Iterable["CheckRecorder"]) -> "CheckRecorder":
        total = cls()
        for recorder in recorders:
            total.merge(recorder)
        return total


@dataclass
class RunSummary:
    """一次压测的汇总结果"""

    vus: int
    duration_s: float
    elapsed_s: float
    fixtures: int
    key_pool_size: int
    checks: Dict[str, CheckCounter] = field(default_factory=dict)
    outcomes: Dict[str, int] = field(default_factory=dict)
    iterations: int = 0
    noop_iterations: int = 0
    replayed_keys: int = 0
    poll_timeouts: int = 0
    errored_iterations: int = 0
    submit_latency: Dict[str, Optional[float]] = field(default_factory=dict)
    poll_latency: Dict[str, Optional[float]] = field(default_factory=dict)
    drained: bool = True

    @classmethod
    def from_recorder(cls, recorder: CheckRecorder, **run_info) -> "RunSummary":
        return cls(
            checks=dict(recorder.checks),
            outcomes=dict(recorder.outcomes),
            iterations=recorder.iterations,
            noop_iterations=recorder.noop_iterations,
            replayed_keys=recorder.replayed_keys,
            poll_timeouts=recorder.poll_timeouts,
            errored_iterations=recorder.errored_iterations,
            submit_latency=latency_stats(recorder.submit_latencies),
            poll_latency=latency_stats(recorder.poll_latencies),
            **run_info,
        )

    def to_dict(self) -> dict:
        return {
            "vus": self.vus,
            "duration_s": self.duration_s,
            "elapsed_s": round(self.elapsed_s, 3),
            "fixtures": self.fixtures,
            "key_pool_size": self.key_pool_size,
            "drained": self.drained,
            "iterations": self.iterations,
            "noop_iterations": self.noop_iterations,
            "replayed_keys": self.replayed_keys,
            "poll_timeouts": self.poll_timeouts,
            "errored_iterations": self.errored_iterations,
            "outcomes": dict(self.outcomes),
            "checks": {
                name: {
                    "passes": c.passes,
                    "fails": c.fails,
                    "rate": round(c.rate, 4),
                }
                for name, c in self.checks.items()
            },
            "latency": {
                "submit": self.submit_latency,
                "poll": self.poll_latency,
            },
        }
