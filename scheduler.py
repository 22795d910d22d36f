#scheduler.py
import logging
import threading
from collections import deque

from data import Mapping, Statistics, format_mappings
from graph_utils import exit_tasks
from cost_model import CostModel, resource_minimizing_communication
from critical_path import CriticalPathAnalyzer
from proposal import Proposal

logger = logging.getLogger(__name__)

# Tolerance for runtime and critical-path window comparisons
TOLERANCE = 1e-5


class ProposalScheduler:
    """
    Online, cost-bounded scheduler that commits one task mapping at a time.

    On construction every task is seeded with its cheapest resource at the primary
    RS instance, and a proposal set is derived: for every task and every alternative
    resource a solo proposal (move the task) and, for non-exit tasks, a group
    proposal (move the task and its successors to another RS instance). Proposals
    are ranked by time saved per additional cost.

    `schedule(task)` is called by an external driver once a task is ready. It
    greedily selects a cost-feasible subset of proposals, applies the best one
    that affects the task and finalizes the task (and any successors the applied
    proposal moved).

    The scheduler exclusively owns its schedule state and proposals. Public
    operations are serialized with an internal lock.
    """

    def __init__(self, workflow, scheduler_input):
        """
        Args:
            workflow (Workflow): Task DAG with spec mappings and resource catalog.
            scheduler_input (SchedulerInput): Cost limit, primary RS instance and RS catalog.
        """
        workflow.validate()
        self.workflow = workflow
        self.scheduler_input = scheduler_input
        self.location_rs = scheduler_input.location_rs
        self.cost_model = CostModel(workflow, scheduler_input)
        self.analyzer = CriticalPathAnalyzer(workflow, self.cost_model, self.location_rs)

        self._lock = threading.RLock()
        self._proposal_arena = {}  # pid -> Proposal, every proposal ever created
        self._next_pid = 0
        self._proposals_updated = False
        self._adjusted_locks = frozenset()  # tasks treated as finalized by the last adjustment

        # Seed: cheapest resource for every task at the primary RS instance
        self._schedule = {
            task_id: Mapping(task_id, self._cheapest_resource(task_id, self.location_rs), self.location_rs)
            for task_id in workflow.task_ids
        }
        self.current_rs_cost = (self.analyzer.span(self._schedule, list(self._schedule.values()))
                                * self.cost_model.rs_rate(self.location_rs))
        self._cost = self.cost_model.total_cost(self._schedule.values(), self.current_rs_cost)

        self._proposals = self._initial_proposals()
        self._adjust_proposals()

        self.cheapest_schedule_cost = self._cheapest_schedule_cost()
        if self.cheapest_schedule_cost > scheduler_input.cost_limit:
            logger.info("No suitable schedule meeting cost restriction (cheapest=%.4f, limit=%.4f).",
                        self.cheapest_schedule_cost, scheduler_input.cost_limit)
        logger.debug("Current cost = %.4f", self._cost)

    # --- Read-only state ---

    @property
    def cost(self):
        with self._lock:
            return self._cost

    @property
    def current_schedule(self):
        """Snapshot {task_id: Mapping} of the current schedule."""
        with self._lock:
            return dict(self._schedule)

    @property
    def proposals(self):
        """Live proposals in their current ranking order."""
        with self._lock:
            return list(self._proposals)

    @property
    def proposals_updated(self):
        with self._lock:
            return self._proposals_updated

    def mapping(self, task_id):
        self.workflow.task(task_id)
        with self._lock:
            return self._schedule[task_id]

    # --- Construction ---

    def _cheapest_resource(self, task_id, rs_id):
        """Cheapest candidate resource of a task; equal costs go to the faster one."""
        cheapest = None
        min_cost = float('inf')
        min_runtime = float('inf')
        for resource_id in self.workflow.candidate_resources(task_id):
            candidate = Mapping(task_id, resource_id, rs_id)
            cost = self.cost_model.cost(candidate)
            runtime = self.cost_model.runtime(candidate)
            if cost < min_cost:
                cheapest, min_cost, min_runtime = resource_id, cost, runtime
            elif cost == min_cost and runtime < min_runtime:
                cheapest, min_runtime = resource_id, runtime
        return cheapest

    def _new_proposal(self, mappings, ts, ac, **kwargs):
        proposal = Proposal(self._next_pid, mappings, ts, ac, **kwargs)
        self._proposal_arena[proposal.pid] = proposal
        self._next_pid += 1
        return proposal

    def _initial_proposals(self):
        est, lft = self.analyzer.analyze(self._schedule)
        exits = set(exit_tasks(self.workflow))
        location_rate = self.cost_model.rs_rate(self.location_rs)

        proposals = []
        for task_id in self.workflow.task_ids:
            current = self._schedule[task_id]
            for resource_id in self.workflow.candidate_resources(task_id):
                if resource_id == current.resource:
                    continue

                # Solo: move only this task, same RS instance
                solo = Mapping(task_id, resource_id, self.location_rs)
                ts = self.cost_model.runtime(current) - self.cost_model.runtime(solo)
                ac = self.cost_model.cost(solo) - self.cost_model.cost(current) - ts * location_rate
                proposals.append(self._new_proposal([solo], ts, ac, task_includes=[task_id]))

                if task_id not in exits:
                    group = self._group_proposal(task_id, resource_id, est, lft)
                    if group is not None:
                        proposals.append(group)
        return proposals

    def _group_proposal(self, task_id, resource_id, est, lft):
        """
        Task on `resource_id` plus each successor on its cheapest mapping that still fits
        the successor's slack, all staged through the RS instance that minimizes
        communication. Returns None when no RS instance is fast enough or a successor
        has no fitting mapping.
        """
        rs = resource_minimizing_communication(self.workflow.resource(resource_id),
                                               self.scheduler_input.rs_instances)
        if rs is None:
            logger.debug("No RS instance fast enough for %s on %s; group proposal skipped.", task_id, resource_id)
            return None

        successors = self.workflow.successors(task_id)
        current_group = [self._schedule[task_id]] + [self._schedule[s] for s in successors]
        max_output_successors = max((self.workflow.task(s).output_mb for s in successors), default=0.0)

        proposed = [Mapping(task_id, resource_id, rs.id)]
        for s in successors:
            options = [Mapping(s, r, rs.id) for r in self.workflow.candidate_resources(s)]
            min_duration = min(self.cost_model.runtime(m) for m in options)
            has_time = lft[s] - est[s] - (self.cost_model.runtime(self._schedule[s]) - min_duration)

            best = None
            min_cost = float('inf')
            for option in options:
                cost = self.cost_model.cost(option)
                if self.cost_model.runtime(option) <= has_time + TOLERANCE and cost < min_cost:
                    best, min_cost = option, cost
            if best is None:
                logger.debug("Successor %s has no mapping on %s fitting its slack; group proposal skipped.", s, rs.id)
                return None
            proposed.append(best)

        task = self.workflow.task(task_id)
        additional_transfer = (self.cost_model.transfer_time_between(task.input_mb, self.location_rs, rs.id)
                               + self.cost_model.transfer_time_between(max_output_successors, self.location_rs, rs.id))
        proposed_span = self.analyzer.span(self._schedule, proposed, additional_transfer)
        ts = self.analyzer.span(self._schedule, current_group) - proposed_span
        additional_rs_cost = proposed_span * self.cost_model.rs_rate(rs.id)
        ac = (self.cost_model.total_cost(proposed, additional_rs_cost)
              - self.cost_model.total_cost(current_group))

        return self._new_proposal(
            proposed, ts, ac,
            ts_plain=self.analyzer.span(self._schedule, proposed),
            ac_plain=additional_rs_cost,
            task_includes=[task_id] + list(successors),
        )

    def _cheapest_schedule_cost(self):
        """
        Lower-bound estimate: per task the cheaper of its current cost and its current
        cost plus the smallest ac of the proposals anchored at it.
        """
        total = 0.0
        for task_id in self.workflow.task_ids:
            min_ac = min((p.ac for p in self._proposals if p.anchor.task == task_id), default=float('inf'))
            cost = self.cost_model.cost(self._schedule[task_id])
            total += min(cost, cost + min_ac)
        return total + self.current_rs_cost

    # --- Adjustment ---

    def _locked_elsewhere(self, task_id, scheduling_task):
        """A task finalized before the task currently being scheduled."""
        return self._schedule[task_id].finalized and task_id != scheduling_task

    def _locked_tasks(self, scheduling_task):
        return frozenset(t for t in self._schedule if self._locked_elsewhere(t, scheduling_task))

    def _adjust_proposals(self, scheduling_task=None):
        """
        Recomputes ts/ac of every proposal against the current schedule, folds in
        overlapping solo proposals and records nested windows.
        """
        schedule = self._schedule
        cost_model = self.cost_model
        self._adjusted_locks = self._locked_tasks(scheduling_task)
        est, lft = self.analyzer.analyze(schedule)
        current_runtime = {t: cost_model.runtime(m) for t, m in schedule.items()}
        windows = {p.pid: (est[p.anchor.task], max(lft[m.task] for m in p.mappings)) for p in self._proposals}

        # Solo proposals that would still change their task
        overlap_candidates = {
            p.pid for p in self._proposals
            if not p.is_group
            and schedule[p.anchor.task].resource != p.anchor.resource
            and not self._locked_elsewhere(p.anchor.task, scheduling_task)
        }

        for proposal in self._proposals:
            anchor = proposal.anchor
            ts = proposal.ts_plain
            ac = proposal.ac_plain

            if proposal.is_group:
                rs = anchor.rs_instance
                t = anchor.task
                task = self.workflow.task(t)
                transfer_predecessors = max(
                    (cost_model.transfer_time_between(task.input_mb, schedule[p].rs_instance, rs)
                     for p in self.workflow.predecessors(t) if schedule[p].rs_instance != rs),
                    default=0.0)
                transfer_successors = max(
                    (cost_model.transfer_time_between(self.workflow.task(s).output_mb, schedule[s].rs_instance, rs)
                     for s in self.workflow.successors(t)),
                    default=0.0)
                ac = (proposal.ts_plain + transfer_predecessors + transfer_successors) * cost_model.rs_rate(rs)
                if schedule[t].resource != anchor.resource:
                    spare_time = lft[t] - est[t] - current_runtime[t]
                    ts = (current_runtime[t]
                          - (cost_model.runtime(anchor) + transfer_predecessors + transfer_successors)
                          - spare_time)

            est_i, lft_i = windows[proposal.pid]
            includes = []
            includes_all = []
            considered = {}  # task_id -> folded overlapping mapping
            ts_o = 0.0

            for other in self._proposals:
                est_o, lft_o = windows[other.pid]

                if other is not proposal and other.pid in overlap_candidates:
                    t_o = other.anchor.task
                    spare_time = lft_o - est_o - current_runtime[t_o]

                    # Windows overlap and the other change does not fit into its slack
                    if est_i < lft_o - TOLERANCE and lft_i - TOLERANCE > est_o and spare_time < other.ts:
                        overlapping = Mapping(t_o, other.anchor.resource, anchor.rs_instance)
                        if t_o != anchor.task:
                            ts_o = max(ts_o, current_runtime[t_o] - cost_model.runtime(overlapping) - spare_time)

                        # One folded proposal per task: replace the earlier one
                        if t_o in considered:
                            ac -= cost_model.cost(considered[t_o]) - cost_model.cost(schedule[t_o])
                        ac += cost_model.cost(overlapping) - cost_model.cost(schedule[t_o])
                        includes.append(other.pid)
                        considered[t_o] = overlapping

                if est_i <= est_o and lft_i <= lft_o:
                    includes_all.append(other.pid)

            proposal.ac = ac
            proposal.ts = ts + ts_o if proposal.is_group else max(ts, ts_o)
            proposal.includes = includes
            proposal.includes_all = includes_all
            proposal.calculate_tradeoff()

    # --- Selection ---

    def _included_mappings(self, proposal):
        mappings = list(proposal.mappings)
        for pid in proposal.includes:
            mappings.extend(self._proposal_arena[pid].mappings)
        return mappings

    def feasible_proposals(self, task_id):
        """
        Greedy cost-feasible subset in ranking order. A proposal is admitted when it
        fits the remaining budget or saves money, unless an admitted proposal already
        covers it. Proposals that would remap a task finalized before `task_id` are
        not eligible.
        """
        with self._lock:
            ranked = sorted(self._proposals, key=lambda p: p.tradeoff, reverse=True)
            subset = []
            involved = set()
            running_cost = self._cost
            for proposal in ranked:
                if proposal.pid in involved:
                    continue
                if any(self._locked_elsewhere(m.task, task_id) for m in proposal.mappings):
                    continue
                if proposal.ac + running_cost <= self.scheduler_input.cost_limit or proposal.ac < 0:
                    subset.append(proposal)
                    involved.add(proposal.pid)
                    involved.update(proposal.includes_all)
                    running_cost += proposal.ac
            return subset

    def _valid_proposal(self, subset, task_id):
        """Largest positive ts among proposals whose own or included mappings cover the task."""
        valid = None
        max_ts = 0.0
        for proposal in subset:
            covers = proposal.touches(task_id) or any(self._proposal_arena[pid].touches(task_id)
                                                      for pid in proposal.includes)
            if covers and max_ts < proposal.ts:
                valid = proposal
                max_ts = proposal.ts
        return valid

    def _apply(self, proposal, task_id):
        valid_mappings = []
        seen = set()
        for mapping in self._included_mappings(proposal):
            if (mapping.task, mapping.resource) not in seen:
                seen.add((mapping.task, mapping.resource))
                valid_mappings.append(mapping)

        rs = valid_mappings[0].rs_instance
        for mapping in valid_mappings:
            existing = self._schedule[mapping.task]
            if self._locked_elsewhere(mapping.task, task_id):
                logger.debug("Skipping %s: task %s is already finalized.", mapping, mapping.task)
                continue
            self._schedule[mapping.task] = Mapping(mapping.task, mapping.resource, rs,
                                                   finalized=existing.finalized, set_by_other_proposal=True)

        kept = []
        for p in self._proposals:
            if not any(not self._schedule[t].set_by_other_proposal for t in p.task_includes):
                continue
            if any(self._schedule[m.task].set_by_other_proposal and self._schedule[m.task].rs_instance != m.rs_instance
                   for m in p.mappings):
                continue
            kept.append(p)
        self._proposals = kept
        self._proposals_updated = True

        self._cost += proposal.ac - proposal.ts * self.cost_model.rs_rate(self.location_rs)
        logger.debug("Scheduled <%s, %s, %s>.", format_mappings(valid_mappings), proposal.ts, proposal.ac)
        return valid_mappings

    # --- Public operations ---

    def schedule(self, task_id):
        """
        Finalizes a mapping for `task_id`, possibly moving and finalizing successors too.

        Dequeuing a task that is already finalized ends the whole call; tasks still
        queued behind it stay unfinalized.

        Raises:
            MissingMappingError: If `task_id` is not part of the workflow.
        """
        with self._lock:
            self.workflow.task(task_id)
            to_schedule = deque([task_id])

            while to_schedule:
                task = to_schedule.popleft()
                current = self._schedule[task]
                if current.finalized:
                    logger.debug("Task %s already scheduled on %s", task, current)
                    return
                logger.debug("Starting scheduling of task %s", task)
                current.finalized = True

                # Finalizing a task also changes which proposals may be folded
                if self._proposals_updated or self._locked_tasks(task) != self._adjusted_locks:
                    self._adjust_proposals(task)
                self._proposals.sort(key=lambda p: p.tradeoff, reverse=True)

                subset = self.feasible_proposals(task)
                valid = self._valid_proposal(subset, task)

                if valid is not None:
                    valid_mappings = self._apply(valid, task)
                    if valid.is_group:
                        for mapping in valid_mappings[1:]:
                            logger.debug("\t%s includes scheduling of task %s", task, mapping.task)
                            to_schedule.append(mapping.task)
                else:
                    self._proposals_updated = False
                    logger.debug("Keep %s.", current)

                logger.debug("Current cost = %.4f", self._cost)

    def get_statistics(self):
        """
        Returns:
            Statistics: Current total cost and makespan (max LFT over the whole workflow).
        """
        with self._lock:
            statistics = Statistics(cost=self._cost, runtime=self.analyzer.makespan(self._schedule))
        logger.info("Workflow results: cost=%s, runtime=%s", statistics.cost, statistics.runtime)
        return statistics
