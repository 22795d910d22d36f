"""
Shared workflow builders for the scheduler tests.

Every fixture workflow uses zero data sizes and a free primary RS instance
("rs0", 1000 Mbit/s) unless stated otherwise, so costs reduce to
declared runtime x hourly price / 3600.
"""

import pytest

from data import Task, Resource, RSInstance, SchedulerInput
from graph_utils import Workflow

SLOW = "slow"
FAST = "fast"


def build_workflow(resources, runtimes, dependencies=(), data=None):
    """
    Args:
        resources: Resource objects.
        runtimes: {task_id: {resource_id: declared runtime}}.
        dependencies: (predecessor, successor) pairs.
        data: {task_id: (input_mb, output_mb)}.
    """
    workflow = Workflow(resources=resources)
    data = data or {}
    for task_id, mappings in runtimes.items():
        input_mb, output_mb = data.get(task_id, (0.0, 0.0))
        workflow.add_task(Task(task_id, input_mb, output_mb))
        for resource_id, runtime in mappings.items():
            workflow.add_mapping(task_id, resource_id, runtime)
    for pred_id, succ_id in dependencies:
        workflow.add_dependency(pred_id, succ_id)
    return workflow


@pytest.fixture
def workflow_builder():
    return build_workflow


@pytest.fixture
def rs0():
    return RSInstance("rs0", bandwidth=1000.0)


@pytest.fixture
def make_input(rs0):
    def _make(cost_limit=float('inf'), rs_instances=None, location_rs="rs0", exclude_data_transfer_cost=False):
        return SchedulerInput(cost_limit, location_rs, tuple(rs_instances or (rs0,)), exclude_data_transfer_cost)
    return _make


@pytest.fixture
def chain_workflow():
    """
    A -> B -> C. Every task takes 10s on `slow` (3600/h). `fast` costs
    `fast_cost_per_hour` and runs A in 8s, B in 7s and C in 8s.
    """
    def _make(fast_cost_per_hour=5400.0):
        resources = [
            Resource(SLOW, 1000.0, cost_per_hour=3600.0),
            Resource(FAST, 1000.0, cost_per_hour=fast_cost_per_hour),
        ]
        runtimes = {
            "A": {SLOW: 10.0, FAST: 8.0},
            "B": {SLOW: 10.0, FAST: 7.0},
            "C": {SLOW: 10.0, FAST: 8.0},
        }
        return build_workflow(resources, runtimes, [("A", "B"), ("B", "C")])
    return _make


@pytest.fixture
def staged_chain_workflow():
    """
    The chain with 125 MB of input for B and C (1s over any 1000 Mbit/s link).
    Runtimes including transfer: A 10/8, B 11/8, C 11/9 on slow/fast.
    """
    resources = [
        Resource(SLOW, 1000.0, cost_per_hour=3600.0),
        Resource(FAST, 1000.0, cost_per_hour=5400.0),
    ]
    runtimes = {
        "A": {SLOW: 10.0, FAST: 8.0},
        "B": {SLOW: 10.0, FAST: 7.0},
        "C": {SLOW: 10.0, FAST: 8.0},
    }
    data = {"B": (125.0, 0.0), "C": (125.0, 0.0)}
    return build_workflow(resources, runtimes, [("A", "B"), ("B", "C")], data=data)


@pytest.fixture
def two_rs_instances():
    """rs1 acquires faster than the primary rs0, so group proposals move there."""
    return (
        RSInstance("rs0", 1000.0, acquisition_delay=1.0),
        RSInstance("rs1", 1000.0),
    )


@pytest.fixture
def fork_workflow():
    """P -> T and P -> S. S only runs on `slow`."""
    resources = [
        Resource(SLOW, 1000.0, cost_per_hour=3600.0),
        Resource(FAST, 1000.0, cost_per_hour=5400.0),
    ]
    runtimes = {
        "P": {SLOW: 10.0, FAST: 8.0},
        "T": {SLOW: 10.0, FAST: 7.0},
        "S": {SLOW: 10.0},
    }
    return build_workflow(resources, runtimes, [("P", "T"), ("P", "S")])


@pytest.fixture
def chain_payload():
    """The chain workflow as a run document."""
    return {
        "costLimit": 31.0,
        "locationRS": "rs0",
        "taskResourceTypes": [
            {"id": SLOW, "costPerHour": 3600.0, "bandwidth": 1000.0, "acquisitionDelay": 0.0},
            {"id": FAST, "costPerHour": 5400.0, "bandwidth": 1000.0, "acquisitionDelay": 0.0},
        ],
        "RSResourceTypes": [
            {"id": "rs0", "costPerHour": 0.0, "bandwidth": 1000.0, "acquisitionDelay": 0.0},
            {"id": "rs-edge", "costPerHour": 0.0, "bandwidth": 1000.0, "acquisitionDelay": 0.0},
        ],
        "tasks": [
            {"id": "A", "inputMB": 0.0, "outputMB": 0.0,
             "resourceTypes": [{"id": SLOW, "runtime": 10.0}, {"id": FAST, "runtime": 8.0}]},
            {"id": "B", "inputMB": 0.0, "outputMB": 0.0,
             "resourceTypes": [{"id": SLOW, "runtime": 10.0}, {"id": FAST, "runtime": 7.0}]},
            {"id": "C", "inputMB": 0.0, "outputMB": 0.0,
             "resourceTypes": [{"id": SLOW, "runtime": 10.0}, {"id": FAST, "runtime": 8.0}]},
        ],
        "dependencies": {"B": ["A"], "C": ["B"]},
    }
