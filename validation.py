#validation.py
from data import MissingMappingError


def validate_schedule(scheduler, require_finalized=True, check_cost_limit=False, epsilon=1e-6):
    """
    Verifies the current schedule of a ProposalScheduler.

    - Every task has a mapping onto one of its candidate resources and a known RS instance.
    - Every task fits its critical-path window: EST + runtime <= LFT.
    - Every task starts after each predecessor finished (EST(t) >= EST(p) + runtime(p)).
    - Optionally: every task is finalized, and the running cost is within the cost limit.

    Args:
        scheduler: ProposalScheduler whose state is checked.
        require_finalized: Report tasks whose mapping is not finalized.
        check_cost_limit: Report a running cost above the configured limit.
        epsilon: Float tolerance for timing and cost comparisons.

    Returns:
        (is_valid, violations): Tuple where:
          - is_valid: bool, True if no violations
          - violations: list of dicts describing each violation
    """
    violations = []
    workflow = scheduler.workflow
    schedule = scheduler.current_schedule
    catalog = scheduler.scheduler_input.catalog

    # --- Structural checks ---
    for task_id in workflow.task_ids:
        mapping = schedule.get(task_id)
        if mapping is None:
            violations.append({
                'type': 'Missing Mapping', 'task': task_id,
                'detail': f"Task {task_id} has no current mapping."})
            continue
        if mapping.resource not in workflow.candidate_resources(task_id):
            violations.append({
                'type': 'Invalid Resource', 'task': task_id,
                'detail': f"Task {task_id} is mapped to {mapping.resource}, which is not one of its candidates."})
        if mapping.rs_instance not in catalog:
            violations.append({
                'type': 'Unknown RS Instance', 'task': task_id,
                'detail': f"Task {task_id} routes data through unknown RS instance {mapping.rs_instance}."})
        if require_finalized and not mapping.finalized:
            violations.append({
                'type': 'Unfinalized Task', 'task': task_id,
                'detail': f"Task {task_id} mapping {mapping} is not finalized."})

    # Timing checks need a complete, consistent schedule
    if any(v['type'] in ('Missing Mapping', 'Invalid Resource', 'Unknown RS Instance') for v in violations):
        return False, violations

    try:
        est, lft = scheduler.analyzer.analyze(schedule)
        runtimes = {t: scheduler.cost_model.runtime(schedule[t]) for t in workflow.task_ids}
    except MissingMappingError as e:
        violations.append({'type': 'Missing Spec Mapping', 'task': None, 'detail': str(e)})
        return False, violations

    # --- Timing checks ---
    for task_id in workflow.task_ids:
        slack = lft[task_id] - est[task_id] - runtimes[task_id]
        if slack < -epsilon:
            violations.append({
                'type': 'Negative Slack', 'task': task_id,
                'est': round(est[task_id], 4), 'lft': round(lft[task_id], 4),
                'detail': f"Task {task_id} needs {runtimes[task_id]:.4f}s but its window "
                          f"[{est[task_id]:.4f}, {lft[task_id]:.4f}] is shorter."})

        for pred_id in workflow.predecessors(task_id):
            pred_finish = est[pred_id] + runtimes[pred_id]
            if est[task_id] < pred_finish - epsilon:
                violations.append({
                    'type': 'Dependency Violation', 'task': task_id, 'predecessor': pred_id,
                    'task_start_time': round(est[task_id], 4),
                    'pred_finish_time': round(pred_finish, 4),
                    'detail': f"Task {task_id} starts at {est[task_id]:.4f} "
                              f"but predecessor {pred_id} finishes at {pred_finish:.4f}."})

    if check_cost_limit and scheduler.cost > scheduler.scheduler_input.cost_limit + epsilon:
        violations.append({
            'type': 'Cost Limit Exceeded', 'task': None,
            'detail': f"Schedule cost {scheduler.cost:.4f} exceeds limit {scheduler.scheduler_input.cost_limit:.4f}."})

    is_valid = (len(violations) == 0)
    return is_valid, violations
