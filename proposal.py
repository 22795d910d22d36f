#proposal.py
import numpy as np
from dataclasses import dataclass, field

from data import format_mappings

# Ranking sentinels: free or cost-saving proposals first, proposals saving no time last
TRADEOFF_MAX = float(np.finfo(np.float64).max)
TRADEOFF_MIN = -TRADEOFF_MAX


def calculate_tradeoff(ts, ac):
    """
    Ranking score of a proposal.

    Args:
        ts (float): Time saved.
        ac (float): Additional cost.

    Returns:
        float: TRADEOFF_MIN if ts <= 0, TRADEOFF_MAX if ac <= 0, otherwise ts / ac.
    """
    if ts <= 0.0:
        return TRADEOFF_MIN
    if ac <= 0.0:
        return TRADEOFF_MAX
    return ts / ac


@dataclass
class Proposal:
    """
    A candidate change to the current schedule.

    mappings[0] is the anchor mapping. A proposal with one mapping is a solo
    proposal (one task moves to another resource); with more it is a group
    proposal (a task and its successors move to another RS instance).

    includes / includes_all hold ids of other proposals owned by the scheduler,
    never the proposals themselves.
    """
    pid: int
    mappings: list
    ts: float
    ac: float
    ts_plain: float = None
    ac_plain: float = None
    tradeoff: float = 0.0
    includes: list = field(default_factory=list)
    includes_all: list = field(default_factory=list)
    task_includes: list = field(default_factory=list)

    def __post_init__(self):
        if self.ts_plain is None:
            self.ts_plain = self.ts
        if self.ac_plain is None:
            self.ac_plain = self.ac
        if not self.task_includes:
            self.task_includes = [m.task for m in self.mappings]
        self.calculate_tradeoff()

    @property
    def anchor(self):
        return self.mappings[0]

    @property
    def is_group(self):
        return len(self.mappings) > 1

    def calculate_tradeoff(self):
        self.tradeoff = calculate_tradeoff(self.ts, self.ac)
        return self.tradeoff

    def touches(self, task_id):
        return any(m.task == task_id for m in self.mappings)

    def __str__(self):
        return f"P{self.pid}[{format_mappings(self.mappings)}, ts={self.ts:.4f}, ac={self.ac:.4f}]"
