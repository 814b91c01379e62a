from collections import deque
from dataclasses import dataclass
from enum import Enum
from itertools import accumulate
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from settings import BELADY_REFS

# 页面在剩余序列中不再出现
NEVER = float("inf")


class SimulationError(ValueError):
    """模拟输入非法时抛出的异常基类"""


class InvalidCapacity(SimulationError):
    """帧数小于 1"""
    def __init__(self, capacity):
        self.capacity = capacity
        super().__init__(f"Frame capacity must be at least 1, got {capacity}")


class EmptyStream(SimulationError):
    """引用串为空"""
    def __init__(self):
        super().__init__("Reference string has no pages")


class NoPolicySelected(SimulationError):
    """没有选择任何置换算法"""
    def __init__(self):
        super().__init__("Select at least one algorithm")


class SimulationCancelled(Exception):
    """模拟在两步之间被取消，部分结果直接丢弃"""
    def __init__(self, policy, time):
        self.policy = policy
        self.time = time
        super().__init__(f"{policy.value} run cancelled at t={time}")


class Policy(Enum):
    FIFO = "FIFO"
    LRU = "LRU"
    OPT = "Optimal"

    @classmethod
    def parse(cls, name):
        """按名称查找算法，大小写不敏感，OPT/Optimal 均可"""
        if isinstance(name, cls):
            return name
        key = str(name).strip().upper()
        for policy in cls:
            if key in (policy.name, policy.value.upper()):
                return policy
        raise ValueError(f"Unknown policy: {name!r}")


class FrameSet:
    """固定容量的物理帧集合，槽位下标只用于确定性地打破平局"""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise InvalidCapacity(capacity)
        self.capacity = capacity
        self.slots: List[Optional[Hashable]] = [None] * capacity

    def __len__(self):
        return self.capacity

    def __getitem__(self, idx):
        return self.slots[idx]

    def __iter__(self):
        return iter(self.slots)

    def find(self, page) -> Optional[int]:
        for i, occupant in enumerate(self.slots):
            if occupant is not None and occupant == page:
                return i
        return None

    def first_empty(self) -> Optional[int]:
        for i, occupant in enumerate(self.slots):
            if occupant is None:
                return i
        return None

    def replace(self, idx: int, page) -> Optional[Hashable]:
        # 同一页面不能同时驻留在两个槽位
        if page is not None:
            resident = self.find(page)
            if resident is not None and resident != idx:
                raise ValueError(f"Page {page!r} already resident in slot {resident}")
        previous = self.slots[idx]
        self.slots[idx] = page
        return previous

    def snapshot(self) -> Tuple[Optional[Hashable], ...]:
        return tuple(self.slots)


@dataclass(frozen=True)
class SimulationStep:
    time: int
    ref: Hashable
    hit: bool
    evicted: Optional[Hashable]
    frames: Tuple[Optional[Hashable], ...]
    slot: int   # 本步命中或装入的槽位

    @property
    def compulsory(self) -> bool:
        """空闲帧装入的缺页，没有被换出的页面"""
        return not self.hit and self.evicted is None

    @property
    def status(self) -> str:
        return "Hit" if self.hit else "Fault"

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "ref": self.ref,
            "hit": self.hit,
            "evicted": self.evicted,
            "frames": list(self.frames),
        }


@dataclass(frozen=True)
class SimulationResult:
    policy: Policy
    capacity: int
    faults: int
    steps: Tuple[SimulationStep, ...]

    @property
    def hits(self) -> int:
        return len(self.steps) - self.faults

    @property
    def fault_rate(self) -> float:
        """缺页率（百分比）"""
        return self.faults / len(self.steps) * 100 if self.steps else 0.0

    def to_dict(self) -> dict:
        return {
            "policy": self.policy.value,
            "capacity": self.capacity,
            "faults": self.faults,
            "hits": self.hits,
            "steps": [step.to_dict() for step in self.steps],
        }


def next_use_table(refs: Sequence[Hashable]) -> List[float]:
    """
    一次反向扫描，table[t] 为 refs[t] 在 t 之后下一次出现的位置

    不再出现时为 NEVER
    """
    table = [NEVER] * len(refs)
    seen = {}
    for t in range(len(refs) - 1, -1, -1):
        table[t] = seen.get(refs[t], NEVER)
        seen[refs[t]] = t
    return table


class AlgoState:

    def __init__(self, policy: Policy, refs: Sequence[Hashable], capacity: int):
        self.policy = policy
        self.refs = refs
        self.frames = FrameSet(capacity)
        self.miss_count = 0

        # 算法辅助变量
        self.load_queue = deque()   # FIFO 装入顺序（槽位下标）
        self.last_used = {}         # LRU 页面 -> 最近一次访问时间
        self.next_use = {}          # OPT 页面 -> 下一次出现位置
        self._next_table = next_use_table(refs) if policy is Policy.OPT else None

    """处理时刻 t 的一次页面访问"""
    def process(self, t: int) -> SimulationStep:
        page = self.refs[t]
        hit_idx = self.frames.find(page)
        if hit_idx is not None:
            return self._handle_hit(hit_idx, page, t)
        return self._handle_miss(page, t)

    """处理页面命中：只更新记录，FIFO 队列不动"""
    def _handle_hit(self, idx, page, t):
        self._touch(page, t)
        return SimulationStep(t, page, True, None, self.frames.snapshot(), idx)

    """处理缺页：有空闲帧直接装入，否则选出牺牲页"""
    def _handle_miss(self, page, t):
        self.miss_count += 1
        evicted = None

        target_idx = self.frames.first_empty()
        if target_idx is None:
            target_idx = self._get_victim()
            evicted = self.frames[target_idx]
            self.last_used.pop(evicted, None)
            self.next_use.pop(evicted, None)

        self.frames.replace(target_idx, page)
        if self.policy is Policy.FIFO:
            self.load_queue.append(target_idx)
        self._touch(page, t)
        return SimulationStep(t, page, False, evicted, self.frames.snapshot(), target_idx)

    def _touch(self, page, t):
        if self.policy is Policy.LRU:
            self.last_used[page] = t
        elif self.policy is Policy.OPT:
            self.next_use[page] = self._next_table[t]

    """找被置换页面所在的槽位；min/max 取第一个极值，平局时下标最小"""
    def _get_victim(self) -> int:
        slots = range(self.frames.capacity)
        # 先进先出：队首槽位驻留最久
        if self.policy is Policy.FIFO:
            return self.load_queue.popleft()
        # 最久未使用
        if self.policy is Policy.LRU:
            return min(slots, key=lambda i: self.last_used[self.frames[i]])
        # 最优：下一次出现最晚
        return max(slots, key=lambda i: self.next_use[self.frames[i]])


def simulate(policy, refs: Iterable[Hashable], capacity: int,
             cancelled: Optional[Callable[[], bool]] = None) -> SimulationResult:
    """
    用单个算法回放完整引用串

    Args:
        policy: Policy 或其名称
        refs: 页面引用序列，长度至少为 1
        capacity: 物理帧数，至少为 1
        cancelled: 可选回调，每步之前检查，返回真则抛出 SimulationCancelled
    """
    policy = Policy.parse(policy)
    if capacity < 1:
        raise InvalidCapacity(capacity)
    refs = tuple(refs)
    if not refs:
        raise EmptyStream()

    algo = AlgoState(policy, refs, capacity)
    steps = []
    for t in range(len(refs)):
        if cancelled is not None and cancelled():
            raise SimulationCancelled(policy, t)
        steps.append(algo.process(t))
    return SimulationResult(policy, capacity, algo.miss_count, tuple(steps))


def run_policies(refs: Iterable[Hashable], capacity: int, policies: Iterable,
                 cancelled: Optional[Callable[[], bool]] = None) -> Dict[Policy, SimulationResult]:
    """在同一输入上分别运行所选算法，各次运行互不共享状态"""
    selected = []
    for name in policies:
        policy = Policy.parse(name)
        if policy not in selected:
            selected.append(policy)
    if not selected:
        raise NoPolicySelected()

    refs = tuple(refs)
    return {policy: simulate(policy, refs, capacity, cancelled) for policy in selected}


class PageManager:
    """界面使用的回放会话：先整体运行，再逐个时刻回放"""

    def __init__(self, refs, memory_blocks, policies=tuple(Policy)):
        self.refs = list(refs)
        self.memory_blocks = memory_blocks
        self.policies = [Policy.parse(p) for p in policies]
        self.mode = "custom"
        self.view_algo = self.policies[0] if self.policies else Policy.FIFO
        self.results: Dict[Policy, SimulationResult] = {}
        self._running_faults: Dict[Policy, List[int]] = {}
        self.reset()

    def reset(self):
        self.current_time = 0

    @property
    def finished(self) -> bool:
        return self.current_time >= len(self.refs)

    """运行所有选中的算法，失败时抛出 SimulationError"""
    def run(self) -> Dict[Policy, SimulationResult]:
        self.results = run_policies(self.refs, self.memory_blocks, self.policies)
        self._running_faults = {
            policy: list(accumulate(0 if s.hit else 1 for s in result.steps))
            for policy, result in self.results.items()
        }
        if self.view_algo not in self.results:
            self.view_algo = next(iter(self.results))
        self.reset()
        return self.results

    """返回当前时刻所有算法的结果和查看算法的内存快照，结束时返回 None"""
    def step(self):
        if not self.results or self.finished:
            return None
        t = self.current_time

        step_results = {}
        for policy, result in self.results.items():
            step = result.steps[t]
            misses = self._running_faults[policy][t]
            step_results[policy] = {
                "status": step.status,
                "swapped": step.evicted,
                "slot": step.slot,
                "miss_count": misses,
                "miss_rate": misses / (t + 1) * 100,
            }

        self.current_time += 1
        view_step = self.results[self.view_algo].steps[t]
        return {
            "time": t,
            "page": self.refs[t],
            "results": step_results,
            "view_algo": self.view_algo,
            "memory": view_step.frames,
            "slot": view_step.slot,
            "current_step": self.current_time,
        }

    """Belady 异常演示序列"""
    def load_belady_sequence(self):
        self.mode = "BELADY"
        self.refs = list(BELADY_REFS)
        self.view_algo = Policy.FIFO
        self.results = {}
        self._running_faults = {}
        self.reset()
