"""
Tests for the data model, run-document parsing and scenario generators.
"""

import json

import pytest

from data import (
    Mapping, MissingMappingError, Resource, RSInstance, SchedulerInput, WorkflowConfiguration,
    format_mappings, generate_configs, generate_rs_instances, generate_workflow, load_scheduler_input,
    parse_workflow,
)
from graph_utils import Workflow, topological_order


def test_resource_requires_positive_bandwidth():
    with pytest.raises(ValueError):
        Resource("r", 0.0)
    with pytest.raises(ValueError):
        RSInstance("rs", -1.0)


def test_mapping_rendering():
    mappings = [Mapping("A", "r1", "rs0"), Mapping("B", "r2", "rs1")]
    assert str(mappings[0]) == "<A,r1,rs0>"
    assert format_mappings(mappings) == "<A,r1,rs0><B,r2,rs1>"
    assert not mappings[0].finalized
    assert not mappings[0].set_by_other_proposal


class TestSchedulerInput:

    def test_catalog_is_sorted_by_id(self):
        scheduler_input = SchedulerInput(10.0, "rs-b", (RSInstance("rs-b", 100.0), RSInstance("rs-a", 50.0)))
        assert [rs.id for rs in scheduler_input.rs_instances] == ["rs-a", "rs-b"]
        assert list(scheduler_input.catalog) == ["rs-a", "rs-b"]

    def test_invalid_configurations_are_rejected(self):
        rs = RSInstance("rs0", 100.0)
        with pytest.raises(ValueError):
            SchedulerInput(10.0, "rs0", ())
        with pytest.raises(ValueError):
            SchedulerInput(10.0, "rs0", (rs, RSInstance("rs0", 200.0)))
        with pytest.raises(ValueError):
            SchedulerInput(-1.0, "rs0", (rs,))
        with pytest.raises(ValueError):
            SchedulerInput(10.0, "rs-missing", (rs,))

    def test_unknown_rs_instance_is_a_lookup_error(self):
        scheduler_input = SchedulerInput(10.0, "rs0", (RSInstance("rs0", 100.0),))
        with pytest.raises(MissingMappingError):
            scheduler_input.rs_instance("rs1")
        assert issubclass(MissingMappingError, LookupError)

    def test_with_cost_limit_leaves_original_untouched(self):
        scheduler_input = SchedulerInput(10.0, "rs0", (RSInstance("rs0", 100.0),))
        raised = scheduler_input.with_cost_limit(25.0)
        assert raised.cost_limit == 25.0
        assert scheduler_input.cost_limit == 10.0
        assert raised.rs_instances == scheduler_input.rs_instances

    def test_from_dict(self, chain_payload):
        scheduler_input = SchedulerInput.from_dict(chain_payload, exclude_data_transfer_cost=True)
        assert scheduler_input.cost_limit == 31.0
        assert scheduler_input.location_rs == "rs0"
        assert scheduler_input.exclude_data_transfer_cost
        assert set(scheduler_input.catalog) == {"rs0", "rs-edge"}

    def test_from_dict_missing_key(self, chain_payload):
        del chain_payload["locationRS"]
        with pytest.raises(ValueError, match="locationRS"):
            SchedulerInput.from_dict(chain_payload)


class TestParseWorkflow:

    def test_parses_tasks_mappings_and_dependencies(self, chain_payload):
        workflow = parse_workflow(chain_payload)
        assert workflow.task_ids == ["A", "B", "C"]
        assert workflow.candidate_resources("B") == ["slow", "fast"]
        assert workflow.runtime("B", "fast") == 7.0
        assert workflow.predecessors("C") == ["B"]
        assert workflow.successors("A") == ["B"]

    def test_missing_key(self, chain_payload):
        del chain_payload["tasks"][0]["resourceTypes"][0]["runtime"]
        with pytest.raises(ValueError, match="runtime"):
            parse_workflow(chain_payload)

    def test_cycle_is_rejected(self, chain_payload):
        chain_payload["dependencies"]["A"] = ["C"]
        with pytest.raises(ValueError, match="Invalid DAG"):
            parse_workflow(chain_payload)

    def test_load_from_file(self, chain_payload, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(json.dumps(chain_payload))
        workflow, scheduler_input = load_scheduler_input(str(path))
        assert len(workflow) == 3
        assert scheduler_input.cost_limit == 31.0


class TestGenerators:

    def test_generated_workflow_is_a_valid_dag(self):
        workflow = generate_workflow(num_tasks=15, complexity_level="high", seed=7)
        assert isinstance(workflow, Workflow)
        assert len(workflow) == 15
        assert workflow.validate()
        assert len(topological_order(workflow)) == 15
        assert all(workflow.candidate_resources(t) for t in workflow.task_ids)

    def test_generated_workflow_is_reproducible(self):
        first = generate_workflow(num_tasks=12, seed=11)
        second = generate_workflow(num_tasks=12, seed=11)
        assert first.spec_mappings == second.spec_mappings
        assert first.pred_tasks == second.pred_tasks

    def test_rs_catalog(self):
        rs_instances = generate_rs_instances(3, seed=1)
        assert [rs.id for rs in rs_instances] == ["rs-central", "rs-edge-1", "rs-edge-2"]
        assert all(rs.bandwidth > 0 for rs in rs_instances)

    def test_edges_acquire_faster_than_central(self):
        for seed in range(10):
            central, *edges = generate_rs_instances(4, bandwidth_factor=0.5, seed=seed)
            assert all(edge.acquisition_delay < central.acquisition_delay for edge in edges)
            # Faster than any resource from generate_resources at the same factor
            assert edges[0].bandwidth == 1000.0

    def test_configuration_apply(self):
        params = WorkflowConfiguration(name="Small", num_tasks=6, num_rs_instances=2, seed=5).apply()
        assert len(params['workflow']) == 6
        assert params['location_rs'] == "rs-central"
        assert len(params['rs_instances']) == 2
        assert params['cost_limit_multiplier'] == 1.2

    def test_specialized_configs_only(self):
        names = [cfg.name for cfg in generate_configs(param_ranges=None)]
        assert names == ["Tight-Budget", "Generous-Budget", "Low-Bandwidth",
                         "Transfer-Cost-Excluded", "Dense-Workflow", "Single-RS"]

    def test_grid_sampling(self):
        configs = generate_configs(param_ranges={'num_tasks': (5, 6), 'complexity_level': ['low', 'high']})
        names = [cfg.name for cfg in configs]
        assert len(configs) == 4 + 6
        assert len(set(names)) == len(names)
        assert sorted(cfg.num_tasks for cfg in configs[:4]) == [5, 5, 6, 6]

    def test_random_sampling_requires_sample_count(self):
        with pytest.raises(ValueError):
            generate_configs(param_ranges={'num_tasks': (5, 10)}, sampling_method='random')
        with pytest.raises(ValueError):
            generate_configs(sampling_method='sobol')
