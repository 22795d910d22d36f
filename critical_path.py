#critical_path.py
from collections import deque

from data import Mapping
from graph_utils import entry_tasks, exit_tasks


class CriticalPathAnalyzer:
    """
    Earliest-start (EST) and latest-finish (LFT) times of tasks under a schedule.

    Both passes run over an explicit task subset so the same code yields the
    critical-path span of an arbitrary group of mappings. A schedule is any dict
    {task_id: Mapping} covering the considered tasks.
    """

    def __init__(self, workflow, cost_model, location_rs):
        self.workflow = workflow
        self.cost_model = cost_model
        self.location_rs = location_rs

    def _runtimes(self, schedule, ordered):
        return {t: self.cost_model.runtime(schedule[t]) for t in ordered}

    def est(self, schedule, subset=None, runtimes=None):
        """
        Forward pass. Entry tasks start once their input reached them from the run's
        primary RS instance; every other task starts after its slowest predecessor,
        plus the RS-to-RS transfer of its input when the two sit on different instances.
        """
        ordered = self.workflow.task_ids if subset is None else list(subset)
        members = set(ordered)
        if runtimes is None:
            runtimes = self._runtimes(schedule, ordered)

        est = {}
        queue = deque()
        for t in entry_tasks(self.workflow, ordered):
            current = schedule[t]
            staged = Mapping(t, current.resource, self.location_rs)
            est[t] = self.cost_model.transfer_time(staged, consider_input=True, consider_output=False)
            queue.extend(s for s in self.workflow.successors(t) if s in members)

        while queue:
            t = queue.popleft()
            if t in est:
                continue
            preds = [p for p in self.workflow.predecessors(t) if p in members]
            # Wait until every predecessor is resolved
            if any(p not in est for p in preds):
                queue.append(t)
                continue

            start = 0.0
            for p in preds:
                additional_transfer = 0.0
                if schedule[t].rs_instance != schedule[p].rs_instance:
                    additional_transfer = self.cost_model.transfer_time_between(
                        self.workflow.task(t).input_mb, schedule[t].rs_instance, schedule[p].rs_instance)
                start = max(start, est[p] + runtimes[p] + additional_transfer)
            est[t] = start
            queue.extend(s for s in self.workflow.successors(t) if s in members)

        return est

    def lft(self, schedule, est, subset=None, runtimes=None):
        """
        Backward pass. Every exit task may finish as late as the overall finish of
        the subset; other tasks must finish before their tightest successor starts.
        """
        ordered = self.workflow.task_ids if subset is None else list(subset)
        members = set(ordered)
        if runtimes is None:
            runtimes = self._runtimes(schedule, ordered)

        finish = max(est[t] + runtimes[t] for t in ordered)
        lft = {}
        queue = deque()
        for t in exit_tasks(self.workflow, ordered):
            lft[t] = finish
            queue.extend(p for p in self.workflow.predecessors(t) if p in members)

        while queue:
            t = queue.popleft()
            if t in lft:
                continue
            succs = [s for s in self.workflow.successors(t) if s in members]
            if any(s not in lft for s in succs):
                queue.append(t)
                continue

            lft[t] = min(lft[s] - runtimes[s] for s in succs)
            queue.extend(p for p in self.workflow.predecessors(t) if p in members)

        return lft

    def analyze(self, schedule, subset=None):
        """
        Returns:
            tuple: (est, lft) dicts keyed by task id.
        """
        ordered = self.workflow.task_ids if subset is None else list(subset)
        runtimes = self._runtimes(schedule, ordered)
        est = self.est(schedule, ordered, runtimes)
        return est, self.lft(schedule, est, ordered, runtimes)

    def span(self, schedule, mappings, epsilon=0.0):
        """
        Runtime of a set of mappings: the critical-path span the set occupies when
        installed over `schedule`, i.e. max LFT - min EST over its tasks, plus epsilon.
        `schedule` itself is left untouched.
        """
        overlay = dict(schedule)
        subset = []
        for mapping in mappings:
            overlay[mapping.task] = mapping
            if mapping.task not in subset:
                subset.append(mapping.task)

        est, lft = self.analyze(overlay, subset)
        return max(lft[t] for t in subset) - min(est[t] for t in subset) + epsilon

    def makespan(self, schedule):
        _, lft = self.analyze(schedule)
        return max(lft.values())
