# comparative_scenarios.py

import time
import traceback
from copy import deepcopy

from tabulate import tabulate

from data import WorkflowConfiguration
from simulation import run_workflow_test


def define_baseline_scenario(base_seed=456):
    """
    Defines the baseline WorkflowConfiguration scenario used for comparisons.
    """
    scenarios = [WorkflowConfiguration(
        name="Baseline",
        num_tasks=40,
        num_resources=3,
        num_rs_instances=3,
        complexity_level="medium",
        bandwidth_factor=1.0,
        cost_limit_multiplier=1.2,
        seed=base_seed
    )]
    print(f"Defined 1 scenario: Baseline (Seed: {base_seed})")
    return scenarios


def derive_variants(config, budget_multipliers=(1.0, 1.2, 1.5)):
    """
    Expands one configuration into one variant per (budget multiplier, billing mode) pair.

    Returns:
        dict: {variant label: WorkflowConfiguration}
    """
    variants = {}
    for multiplier in budget_multipliers:
        for exclude in (False, True):
            variant = deepcopy(config)
            variant.cost_limit_multiplier = multiplier
            variant.exclude_data_transfer_cost = exclude
            billing = "runtime-only" if exclude else "with-transfer"
            label = f"x{multiplier:g} {billing}"
            variant.name = f"{config.name} {label}"
            variants[label] = variant
    return variants


def run_comparison(configurations, budget_multipliers=(1.0, 1.2, 1.5)):
    """
    Runs every budget / billing variant of each configuration and collects results.
    """
    results = []
    total_configs = len(configurations)
    for i, config in enumerate(configurations):
        print(f"\n===== Running Scenario {i + 1}/{total_configs}: {config.name} =====")
        scenario_results = {'config_name': config.name, 'config_details': str(config), 'variants': {}}

        for label, variant in derive_variants(config, budget_multipliers).items():
            print(f"\n--- Running: {label} ---")
            start_time = time.time()
            try:
                result = run_workflow_test(variant)
            except Exception as e:
                error_msg = f"Unhandled Exception: {type(e).__name__}: {e}"
                print(f"!!! {label} FAILED after {time.time() - start_time:.2f}s: {error_msg} !!!")
                traceback.print_exc()
                result = {'error': error_msg}
            result['duration'] = time.time() - start_time
            scenario_results['variants'][label] = result

        results.append(scenario_results)
        print(f"===== Finished Scenario: {config.name} =====")

    return results


def display_results(results):
    """
    Displays the comparison results in a formatted table using tabulate.
    """
    if not results:
        print("No results to display.")
        return

    headers = ["Scenario", "Variant", "C_max", "C_init", "C_final", "M_init", "M_final",
               "M_red %", "Changed", "Moved RS", "Valid", "Dur. (s)"]
    table_data = []
    for scenario_res in results:
        for label, res in scenario_res['variants'].items():
            if 'error' in res:
                table_data.append([scenario_res['config_name'], label] + ["ERR"] * 9 + [res['duration']])
                continue
            table_data.append([
                scenario_res['config_name'], label,
                res['cost_limit'], res['initial_cost'], res['final_cost'],
                res['initial_makespan'], res['final_makespan'],
                res['makespan_reduction_percent'],
                res['changed_mapping_count'], res['moved_rs_count'],
                "OK" if res['final_schedule_valid'] and res['budget_met'] else "FAIL",
                res['duration'],
            ])

    print("\n--- Comparison Results ---")
    print(tabulate(table_data, headers=headers, tablefmt="grid", floatfmt=".2f", numalign="right", stralign="left"))
    print("C = cost ($), M = makespan (s), M_red % = makespan reduction against the all-cheapest schedule")


def display_changes(results):
    """ Displays the tasks whose mapping changed in each variant. """
    print("\n--- Mapping Changes ---")
    for scenario_res in results:
        print(f"\n===== Scenario: {scenario_res.get('config_name')} =====")
        for label, res in scenario_res['variants'].items():
            print(f"\n--- {label} ---")
            if 'error' in res:
                print(f"    ERROR: {res['error']}")
                continue
            if not res['changed_tasks']:
                print("    - No mappings changed (budget left no room).")
                continue
            for task_id in res['changed_tasks']:
                before = res['initial_mappings'][task_id]
                after = res['final_mappings'][task_id]
                print(f"    {task_id}: {before[0]}@{before[1]} -> {after[0]}@{after[1]}")


if __name__ == "__main__":
    print("=== Scheduler Budget Comparison Script ===")

    baseline_scenario = define_baseline_scenario(base_seed=456)

    overall_start = time.time()
    comparison_results = run_comparison(baseline_scenario)
    overall_duration = time.time() - overall_start

    display_results(comparison_results)
    display_changes(comparison_results)

    failures_found = [(r['config_name'], label, res['error'])
                      for r in comparison_results
                      for label, res in r['variants'].items() if 'error' in res]
    if failures_found:
        print("\n--- ERRORS Encountered During Run ---")
        for name, label, error in failures_found:
            print(f"Scenario: {name}, Variant: {label} -> Error: {error}")
    elif comparison_results:
        print("\nNo runtime errors encountered during scheduling.")

    print(f"\n=== Comparison Script Finished in {overall_duration:.2f} seconds ===")
