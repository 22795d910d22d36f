#graph_utils.py
from collections import deque

from data import Task, Resource, TaskClass, MissingMappingError


class Workflow(object):
    """
    Task-only projection of a workflow DAG together with its resource catalog and
    the per-(task, resource) spec mappings carrying declared runtimes.

    Tasks, resources and candidate resources keep their insertion order.
    """

    def __init__(self, tasks=None, resources=None):
        self.tasks = {}          # task_id -> Task
        self.resources = {}      # resource_id -> Resource
        self.pred_tasks = {}     # task_id -> [predecessor ids]
        self.succ_tasks = {}     # task_id -> [successor ids]
        self.spec_mappings = {}  # task_id -> {resource_id: declared runtime (s)}

        for resource in resources or []:
            self.add_resource(resource)
        for task in tasks or []:
            self.add_task(task)

    def __len__(self):
        return len(self.tasks)

    def __contains__(self, task_id):
        return task_id in self.tasks

    @property
    def task_ids(self):
        return list(self.tasks)

    def add_task(self, task: Task):
        if task.id in self.tasks:
            raise ValueError(f"Duplicate task id '{task.id}'")
        self.tasks[task.id] = task
        self.pred_tasks[task.id] = []
        self.succ_tasks[task.id] = []
        self.spec_mappings[task.id] = {}
        return task

    def add_resource(self, resource: Resource):
        if resource.id in self.resources:
            raise ValueError(f"Duplicate resource id '{resource.id}'")
        self.resources[resource.id] = resource
        return resource

    def add_dependency(self, pred_id, succ_id):
        for task_id in (pred_id, succ_id):
            if task_id not in self.tasks:
                raise ValueError(f"Dependency {pred_id} -> {succ_id} references unknown task '{task_id}'")
        if pred_id == succ_id:
            raise ValueError(f"Task '{pred_id}' cannot depend on itself")
        if succ_id not in self.succ_tasks[pred_id]:
            self.succ_tasks[pred_id].append(succ_id)
            self.pred_tasks[succ_id].append(pred_id)

    def add_mapping(self, task_id, resource_id, runtime):
        if task_id not in self.tasks:
            raise ValueError(f"Mapping references unknown task '{task_id}'")
        if runtime < 0:
            raise ValueError(f"Runtime of ({task_id}, {resource_id}) must be non-negative, got {runtime}")
        self.spec_mappings[task_id][resource_id] = float(runtime)

    def task(self, task_id):
        try:
            return self.tasks[task_id]
        except KeyError:
            raise MissingMappingError(f"Unknown task '{task_id}'") from None

    def resource(self, resource_id):
        try:
            return self.resources[resource_id]
        except KeyError:
            raise MissingMappingError(f"Unknown resource '{resource_id}'") from None

    def runtime(self, task_id, resource_id):
        """Declared runtime of the spec mapping (task_id, resource_id)."""
        try:
            return self.spec_mappings[task_id][resource_id]
        except KeyError:
            raise MissingMappingError(f"No spec mapping for task '{task_id}' on resource '{resource_id}'") from None

    def candidate_resources(self, task_id):
        if task_id not in self.spec_mappings:
            raise MissingMappingError(f"Unknown task '{task_id}'")
        return list(self.spec_mappings[task_id])

    def predecessors(self, task_id):
        return self.pred_tasks[task_id]

    def successors(self, task_id):
        return self.succ_tasks[task_id]

    def validate(self):
        """
        Checks that the workflow is a usable DAG.

        Raises:
            ValueError: A task has no candidate mapping, a mapping names an unknown
                        resource, or the dependency graph contains a cycle.
        """
        for task_id, mappings in self.spec_mappings.items():
            if not mappings:
                raise ValueError(f"Task '{task_id}' has no candidate resource mappings")
            for resource_id in mappings:
                if resource_id not in self.resources:
                    raise ValueError(f"Task '{task_id}' is mapped to unknown resource '{resource_id}'")
        topological_order(self)
        return True


def _members(workflow, subset):
    return set(workflow.tasks) if subset is None else set(subset)


def _ordered(workflow, subset):
    return workflow.task_ids if subset is None else list(subset)


def classify_task(workflow, task_id, subset=None):
    """
    Classifies a task relative to a subset of the workflow (the whole DAG by default).

    Returns:
        TaskClass
    """
    members = _members(workflow, subset)
    has_preds = any(p in members for p in workflow.predecessors(task_id))
    has_succs = any(s in members for s in workflow.successors(task_id))
    if has_preds and has_succs:
        return TaskClass.INTERMEDIATE
    if has_preds:
        return TaskClass.EXIT
    if has_succs:
        return TaskClass.ENTRY
    return TaskClass.ISOLATED


def entry_tasks(workflow, subset=None):
    """Tasks without predecessors inside the subset (isolated tasks included)."""
    members = _members(workflow, subset)
    return [t for t in _ordered(workflow, subset)
            if not any(p in members for p in workflow.predecessors(t))]


def exit_tasks(workflow, subset=None):
    """Tasks without successors inside the subset (isolated tasks included)."""
    members = _members(workflow, subset)
    return [t for t in _ordered(workflow, subset)
            if not any(s in members for s in workflow.successors(t))]


def intermediate_tasks(workflow, subset=None):
    return [t for t in _ordered(workflow, subset)
            if classify_task(workflow, t, subset) == TaskClass.INTERMEDIATE]


def topological_order(workflow, subset=None):
    """
    Kahn's algorithm over the subset (whole DAG by default). Ties keep insertion order.

    Raises:
        ValueError: If the considered tasks contain a cycle.
    """
    members = _members(workflow, subset)
    ordered = _ordered(workflow, subset)
    in_degree = {t: sum(1 for p in workflow.predecessors(t) if p in members) for t in ordered}
    queue = deque(t for t in ordered if in_degree[t] == 0)
    order = []

    while queue:
        task_id = queue.popleft()
        order.append(task_id)
        for succ in workflow.successors(task_id):
            if succ in members:
                in_degree[succ] -= 1
                if in_degree[succ] == 0:
                    queue.append(succ)

    if len(order) != len(ordered):
        cyclic = sorted(t for t in ordered if in_degree[t] > 0)
        raise ValueError(f"Invalid DAG: dependency cycle among tasks {cyclic}")
    return order
