#simulation.py
import copy
import os
import time
import pandas as pd

from data import SchedulerInput, generate_configs, parse_workflow, WorkflowConfiguration
from graph_utils import topological_order
from scheduler import ProposalScheduler
from validation import validate_schedule


def schedule_in_topological_order(scheduler, task_order=None):
    """
    Drives a scheduler the way a workflow engine would: every task is declared
    ready once, in dependency order.

    Args:
        scheduler: ProposalScheduler to drive.
        task_order (list, optional): Explicit order of task ids. Defaults to a topological order.

    Returns:
        The driven scheduler.
    """
    for task_id in task_order or topological_order(scheduler.workflow):
        scheduler.schedule(task_id)
    return scheduler


def run_workflow_test(config: WorkflowConfiguration):
    """
    Run a full scheduling test for a given configuration: seed the all-cheapest
    schedule, derive the cost limit from it, drive the scheduler over the whole
    workflow and validate the result.

    Args:
        config: WorkflowConfiguration object.

    Returns:
        dict: Test results and metrics, including initial and final mappings.
    """
    start_run_time = time.time()
    print("-" * 60)
    print(f"Running Test: {config.name}")
    print(config)

    # 1. Generate workflow and RS catalog
    params = config.apply()
    workflow = params['workflow']

    # 2. Seed schedule cost under an unlimited budget
    unlimited_input = SchedulerInput(
        cost_limit=float('inf'),
        location_rs=params['location_rs'],
        rs_instances=tuple(params['rs_instances']),
        exclude_data_transfer_cost=params['exclude_data_transfer_cost'],
    )
    seed_scheduler = ProposalScheduler(workflow, unlimited_input)
    initial_cost = seed_scheduler.cost
    initial_makespan = seed_scheduler.analyzer.makespan(seed_scheduler.current_schedule)
    cost_limit = initial_cost * params['cost_limit_multiplier']
    print(f" Seed Schedule: cost={initial_cost:.4f}, makespan={initial_makespan:.2f} (limit = {cost_limit:.4f})")

    # 3. Schedule under the derived limit
    construction_start = time.time()
    scheduler = ProposalScheduler(workflow, unlimited_input.with_cost_limit(cost_limit))
    construction_time = time.time() - construction_start
    initial_mappings = {t: (m.resource, m.rs_instance) for t, m in scheduler.current_schedule.items()}
    initial_proposal_count = len(scheduler.proposals)

    scheduling_start = time.time()
    schedule_in_topological_order(scheduler)
    scheduling_time = time.time() - scheduling_start

    statistics = scheduler.get_statistics()
    final_mappings = {t: (m.resource, m.rs_instance) for t, m in scheduler.current_schedule.items()}
    changed = [t for t in final_mappings if final_mappings[t] != initial_mappings[t]]
    moved_rs = [t for t in final_mappings if final_mappings[t][1] != params['location_rs']]
    print(f" Final Schedule: cost={statistics.cost:.4f}, makespan={statistics.runtime:.2f} "
          f"(took {scheduling_time:.2f}s)")
    print(f"  Changed mappings: {len(changed)}, moved to other RS instances: {len(moved_rs)}")

    is_valid, violations = validate_schedule(scheduler, require_finalized=True)
    if not is_valid:
        print("\nWARNING: Final schedule has violations!")
        for v in violations[:5]:
            print(f"  - {v['type']}: {v['detail']}")

    run_duration = time.time() - start_run_time
    print(f" Test run completed in {run_duration:.2f} seconds.")
    print("-" * 60)

    result_data = {
        'config': config,
        'config_name': config.name,
        'config_details': str(config),
        'num_tasks': len(workflow),
        'location_rs': params['location_rs'],
        'cost_limit': cost_limit,
        'cheapest_schedule_cost': scheduler.cheapest_schedule_cost,
        'initial_cost': initial_cost,
        'final_cost': statistics.cost,
        'initial_makespan': initial_makespan,
        'final_makespan': statistics.runtime,
        'cost_change_percent': (statistics.cost - initial_cost) / initial_cost * 100 if initial_cost > 0 else 0,
        'makespan_reduction_percent': (initial_makespan - statistics.runtime) / initial_makespan * 100 if initial_makespan > 0 else 0,
        'initial_proposal_count': initial_proposal_count,
        'changed_mapping_count': len(changed),
        'moved_rs_count': len(moved_rs),
        'changed_tasks': changed,
        'final_schedule_valid': is_valid,
        'final_schedule_violations': violations,
        'construction_duration': construction_time,
        'scheduling_duration': scheduling_time,
        'total_duration': run_duration,
        'initial_mappings': initial_mappings,
        'final_mappings': final_mappings,
    }
    result_data['budget_met'] = result_data['final_cost'] <= cost_limit + 1e-9
    return result_data


def run_cost_limit_sweep(payload, cases, exclude_data_transfer_cost=False, task_order=None):
    """
    Re-runs one workflow document under several (cost limit, bandwidth) settings.
    The bandwidth of every resource type and RS instance whose id contains 'edge'
    is overwritten with the case bandwidth.

    Args:
        payload (dict): Run document (see data.parse_workflow / SchedulerInput.from_dict).
        cases (list): (cost_limit, bandwidth) tuples.
        exclude_data_transfer_cost (bool): Billing mode of the schedulers.
        task_order (list, optional): Order in which tasks are declared ready.

    Returns:
        pd.DataFrame: One row per case with cost_limit, bandwidth, cost, runtime, within_limit.
    """
    records = []
    for cost_limit, bandwidth in cases:
        document = copy.deepcopy(payload)
        document['costLimit'] = cost_limit
        for entry in document['taskResourceTypes'] + document['RSResourceTypes']:
            if 'edge' in entry['id']:
                entry['bandwidth'] = bandwidth

        workflow = parse_workflow(document)
        scheduler = ProposalScheduler(workflow, SchedulerInput.from_dict(document, exclude_data_transfer_cost))
        schedule_in_topological_order(scheduler, task_order)
        statistics = scheduler.get_statistics()
        records.append({
            'cost_limit': cost_limit,
            'bandwidth': bandwidth,
            'cost': statistics.cost,
            'runtime': statistics.runtime,
            'within_limit': statistics.cost <= cost_limit,
        })
    return pd.DataFrame(records)


def run_sequential_test_suite(param_ranges=None, sampling_method='grid', num_samples=100, progress_interval=5,
                              output_prefix="schedule_results"):
    """
    Runs a suite of scheduling tests sequentially based on generated configurations
    and saves summary CSV/text files into a timestamped output directory.

    Returns:
        tuple: (results_df, failures, output_dir)
    """
    if sampling_method not in ['grid', 'random']:
        raise ValueError(f"sampling_method must be 'grid' or 'random', got {sampling_method}")
    if sampling_method == 'random' and param_ranges is not None and num_samples <= 0:
        raise ValueError(f"num_samples must be positive for random sampling, got {num_samples}")

    print("Generating test configurations...")
    configs = generate_configs(
        param_ranges=param_ranges,
        sampling_method=sampling_method,
        num_samples=num_samples if sampling_method == 'random' else None
    )
    if not configs:
        print("Warning: No configurations were generated with the current settings. Exiting.")
        return pd.DataFrame(), [], None
    print(f"Generated {len(configs)} test configurations")

    results = []
    failures = []
    timestamp = time.strftime('%Y%m%d-%H%M%S')
    method_str = sampling_method if sampling_method == 'grid' else f"{sampling_method}_{num_samples}"
    output_dir = f"{output_prefix}_{method_str}_{timestamp}"
    os.makedirs(output_dir, exist_ok=True)

    print(f"\nExecuting {len(configs)} tests sequentially...")
    print(f"Results will be saved to: {output_dir}")

    for i, config in enumerate(configs):
        test_start_time = time.time()
        try:
            results.append(run_workflow_test(config))
        except Exception as e:
            # Record and continue with the next scenario
            failures.append({'name': config.name, 'error': f"{type(e).__name__}: {e}"})
        finally:
            if (i + 1) % progress_interval == 0 or (i + 1) == len(configs):
                progress = ((i + 1) / len(configs)) * 100
                print(f"Completed {i + 1}/{len(configs)} tests ({progress:.1f}%) - "
                      f"Last test took: {time.time() - test_start_time:.2f}s - "
                      f"Failures so far: {len(failures)}")

    print("\nTest execution finished.")
    print(f"Successful tests: {len(results)}/{len(configs)}")
    print(f"Failed tests: {len(failures)}/{len(configs)}")

    result_records = []
    for r in results:
        config = r['config']
        result_records.append({
            'name': config.name,
            'num_tasks': config.num_tasks,
            'num_resources': config.num_resources,
            'num_rs_instances': config.num_rs_instances,
            'complexity_level': config.complexity_level,
            'bandwidth_factor': config.bandwidth_factor,
            'cost_limit_multiplier': config.cost_limit_multiplier,
            'exclude_data_transfer_cost': config.exclude_data_transfer_cost,
            'cost_limit': r['cost_limit'],
            'initial_cost': r['initial_cost'],
            'final_cost': r['final_cost'],
            'initial_makespan': r['initial_makespan'],
            'final_makespan': r['final_makespan'],
            'cost_change_percent': r['cost_change_percent'],
            'makespan_reduction_percent': r['makespan_reduction_percent'],
            'changed_mapping_count': r['changed_mapping_count'],
            'moved_rs_count': r['moved_rs_count'],
            'budget_met': r['budget_met'],
            'final_schedule_valid': r['final_schedule_valid'],
            'total_duration': r['total_duration'],
        })
    results_df = pd.DataFrame(result_records)

    if not results_df.empty:
        summary_path = f'{output_dir}/results_summary.csv'
        print(f"Saving results summary ({len(results_df)} rows) to {summary_path}")
        results_df.to_csv(summary_path, index=False)
    else:
        print("No successful test results recorded. Skipping results CSV file generation.")

    if failures:
        fail_csv_path = f'{output_dir}/failures.csv'
        print(f"Saving failure details ({len(failures)} failures) to {fail_csv_path}")
        pd.DataFrame(failures).to_csv(fail_csv_path, index=False)

    summary_txt_path = f'{output_dir}/test_summary.txt'
    with open(summary_txt_path, 'w') as f:
        f.write("Test Suite Summary\n")
        f.write(f"Timestamp: {timestamp}\n")
        f.write(f"Output Directory: {output_dir}\n")
        f.write("-" * 30 + "\n")
        f.write(f"Total configurations generated: {len(configs)}\n")
        f.write(f"  Sampling method: {sampling_method}\n")
        f.write(f"Successful tests: {len(results)}/{len(configs)}\n")
        f.write(f"Failed tests: {len(failures)}/{len(configs)}\n")
        f.write("-" * 30 + "\n")
        if not results_df.empty:
            f.write(f"Average Metrics (across {len(results_df)} successful tests):\n")
            f.write(f"  - Makespan reduction: {results_df['makespan_reduction_percent'].mean():.2f}%\n")
            f.write(f"  - Cost change: {results_df['cost_change_percent'].mean():.2f}%\n")
            f.write(f"  - Changed mappings per config: {results_df['changed_mapping_count'].mean():.2f}\n")
            f.write(f"  - Budget met: {results_df['budget_met'].mean() * 100:.1f}%\n")
        else:
            f.write("Average Metrics: Not calculated (no successful tests).\n")

    print("\nTest suite finished.")
    return results_df, failures, output_dir


if __name__ == '__main__':
    print("--- Running Specific Scheduling Configuration Tests ---")

    target_config_names = [
        "Tight-Budget",
        "Generous-Budget",
        "Low-Bandwidth",
    ]
    all_specialized_configs = generate_configs(param_ranges=None, seed=42)
    configs_to_test = [cfg for cfg in all_specialized_configs if cfg.name in target_config_names]

    results_list = []
    failures_list = []
    for i, config in enumerate(configs_to_test):
        print(f"\n--- Test {i + 1}/{len(configs_to_test)} ---")
        try:
            results_list.append(run_workflow_test(config))
        except Exception as e:
            print(f"!!! Test '{config.name}' Failed: {type(e).__name__}: {e} !!!")
            failures_list.append({'config_name': config.name, 'error': str(e)})

    print("\n" + "=" * 35 + " Specific Test Run Summary " + "=" * 35)
    if results_list:
        print("-" * 98)
        print(f"{'Config Name':<24} | {'C_init':>10} | {'C_final':>10} | {'C_max':>10} | "
              f"{'M_init':>10} | {'M_final':>10} | {'Valid':>5} | {'Chg':>4}")
        print("-" * 98)
        for r in results_list:
            valid_str = "OK" if r['final_schedule_valid'] else "FAIL"
            print(f"{r['config_name']:<24} | {r['initial_cost']:>10.4f} | {r['final_cost']:>10.4f} | "
                  f"{r['cost_limit']:>10.4f} | {r['initial_makespan']:>10.2f} | {r['final_makespan']:>10.2f} | "
                  f"{valid_str:>5} | {r['changed_mapping_count']:>4}")
        print("-" * 98)

    if failures_list:
        print("\nFailures Encountered:")
        for f in failures_list:
            print(f" - {f['config_name']}: {f['error']}")
