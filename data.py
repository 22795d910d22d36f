#data.py

import json
import random
import itertools
import numpy as np
from enum import Enum
from dataclasses import dataclass, replace

class TaskClass(Enum):
    """
    TaskClass describes the position of a task inside a considered subset of the workflow DAG:
      - ENTRY: No predecessors inside the subset.
      - EXIT: No successors inside the subset.
      - INTERMEDIATE: Predecessors and successors inside the subset.
      - ISOLATED: Neither; seeds the forward pass like an entry and the backward pass like an exit.
    """
    ENTRY = 0
    EXIT = 1
    INTERMEDIATE = 2
    ISOLATED = 3


class MissingMappingError(LookupError):
    """
    Raised when a (task, resource) spec mapping, a resource or an RS instance cannot be found.
    Indicates an inconsistent workflow or catalog and is never defaulted.
    """


@dataclass(frozen=True)
class Task:
    """A workflow task node. Data sizes are in MB."""
    id: str
    input_mb: float = 0.0
    output_mb: float = 0.0


@dataclass(frozen=True)
class Resource:
    """
    A compute resource a task can be mapped to.
    bandwidth is in Mbit/s, acquisition_delay in seconds.
    """
    id: str
    bandwidth: float
    acquisition_delay: float = 0.0
    cost_per_hour: float = 0.0

    def __post_init__(self):
        if self.bandwidth <= 0:
            raise ValueError(f"Resource {self.id} must have a positive bandwidth, got {self.bandwidth}")


@dataclass(frozen=True)
class RSInstance:
    """
    A remote-site (RS) instance: the data staging location a mapping routes its
    input and output through. Same attributes as a Resource, separate catalog.
    """
    id: str
    bandwidth: float
    acquisition_delay: float = 0.0
    cost_per_hour: float = 0.0

    def __post_init__(self):
        if self.bandwidth <= 0:
            raise ValueError(f"RS instance {self.id} must have a positive bandwidth, got {self.bandwidth}")


@dataclass
class Mapping:
    """
    Binds a task to a resource and an RS instance.

    finalized: the mapping is committed and will not be replaced.
    set_by_other_proposal: the mapping was installed by applying a proposal.
    """
    task: str
    resource: str
    rs_instance: str
    finalized: bool = False
    set_by_other_proposal: bool = False

    def __str__(self):
        return f"<{self.task},{self.resource},{self.rs_instance}>"


def format_mappings(mappings):
    """Render mappings as concatenated <task,resource,rs> triples for diagnostics."""
    return "".join(str(mapping) for mapping in mappings)


@dataclass
class Statistics:
    cost: float  # Total monetary cost of the current schedule
    runtime: float  # Makespan: max LFT over the whole workflow


@dataclass(frozen=True)
class SchedulerInput:
    """
    Run configuration of one scheduler instance. Immutable; the RS catalog is kept
    sorted by id so every tie-break over it is reproducible.
    """
    cost_limit: float
    location_rs: str
    rs_instances: tuple
    exclude_data_transfer_cost: bool = False

    def __post_init__(self):
        if not self.rs_instances:
            raise ValueError("SchedulerInput requires at least one RS instance")
        ordered = tuple(sorted(self.rs_instances, key=lambda rs: rs.id))
        ids = [rs.id for rs in ordered]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate RS instance ids in catalog: {ids}")
        if self.cost_limit < 0:
            raise ValueError(f"cost_limit must be non-negative, got {self.cost_limit}")
        if self.location_rs not in ids:
            raise ValueError(f"location_rs '{self.location_rs}' is not in the RS catalog {ids}")
        object.__setattr__(self, 'rs_instances', ordered)

    @property
    def catalog(self):
        """Ordered {rs_id: RSInstance} view of the catalog."""
        return {rs.id: rs for rs in self.rs_instances}

    def rs_instance(self, rs_id):
        for rs in self.rs_instances:
            if rs.id == rs_id:
                return rs
        raise MissingMappingError(f"Unknown RS instance '{rs_id}'")

    def with_cost_limit(self, cost_limit):
        return replace(self, cost_limit=cost_limit)

    @classmethod
    def from_dict(cls, payload, exclude_data_transfer_cost=False):
        """
        Builds a SchedulerInput from a run document.

        Args:
            payload (dict): Document with 'costLimit', 'locationRS' and
                            'RSResourceTypes' [{id, costPerHour, bandwidth, acquisitionDelay}].
            exclude_data_transfer_cost (bool): Bill only the declared runtime of mappings.

        Returns:
            SchedulerInput
        """
        try:
            rs_instances = tuple(_catalog_entry(RSInstance, entry) for entry in payload['RSResourceTypes'])
            return cls(
                cost_limit=float(payload['costLimit']),
                location_rs=payload['locationRS'],
                rs_instances=rs_instances,
                exclude_data_transfer_cost=exclude_data_transfer_cost,
            )
        except KeyError as e:
            raise ValueError(f"Scheduler input is missing required key {e}") from e


def _catalog_entry(cls, entry):
    return cls(
        id=entry['id'],
        bandwidth=float(entry['bandwidth']),
        acquisition_delay=float(entry.get('acquisitionDelay', 0.0)),
        cost_per_hour=float(entry.get('costPerHour', 0.0)),
    )


def parse_workflow(payload):
    """
    Builds a validated Workflow from a run document.

    Expected keys:
        tasks: [{id, inputMB, outputMB, resourceTypes: [{id, runtime}]}]
        taskResourceTypes: [{id, costPerHour, bandwidth, acquisitionDelay}]
        dependencies: {task_id: [predecessor ids]} (optional)
    """
    from graph_utils import Workflow  # Import here to avoid circular imports

    workflow = Workflow()
    try:
        for entry in payload['taskResourceTypes']:
            workflow.add_resource(_catalog_entry(Resource, entry))
        for entry in payload['tasks']:
            workflow.add_task(Task(entry['id'], float(entry.get('inputMB', 0.0)), float(entry.get('outputMB', 0.0))))
            for resource_type in entry.get('resourceTypes', []):
                workflow.add_mapping(entry['id'], resource_type['id'], float(resource_type['runtime']))
    except KeyError as e:
        raise ValueError(f"Workflow document is missing required key {e}") from e

    for task_id, preds in payload.get('dependencies', {}).items():
        for pred_id in preds:
            workflow.add_dependency(pred_id, task_id)

    workflow.validate()
    return workflow


def load_scheduler_input(path, exclude_data_transfer_cost=False):
    """
    Reads a JSON run document from disk.

    Returns:
        tuple: (workflow, scheduler_input)
    """
    with open(path) as f:
        payload = json.load(f)
    return parse_workflow(payload), SchedulerInput.from_dict(payload, exclude_data_transfer_cost)


# --- Generators ---

def generate_resources(num_resources=3, bandwidth_factor=1.0, seed=None):
    """
    Generates a heterogeneous resource catalog where faster resources cost more per hour.

    Args:
        num_resources (int): Number of resources. The first one is the slowest.
        bandwidth_factor (float): Multiplier on all base bandwidths.
        seed (int, optional): Random seed for reproducibility.

    Returns:
        list: (Resource, speed) tuples. speed divides a task's base runtime.
    """
    if seed is not None:
        random.seed(seed)

    resources = []
    speed = 1.0
    for i in range(num_resources):
        if i > 0:
            speed += random.uniform(0.4, 1.0)
        bandwidth = random.choice([100.0, 200.0, 400.0, 1000.0]) * bandwidth_factor
        # Larger instances take longer to provision
        acquisition_delay = 0.0 if i == 0 else round(random.uniform(1.0, 5.0) * speed, 2)
        # Super-linear price: speed costs more than it saves
        cost_per_hour = round(0.4 * speed ** 1.6 * random.uniform(0.9, 1.1), 4)
        resources.append((Resource(f"vm-{i + 1}", bandwidth, acquisition_delay, cost_per_hour), speed))
    return resources


def generate_rs_instances(num_rs_instances=3, bandwidth_factor=1.0, seed=None):
    """
    Generates an RS catalog: one central instance plus edge instances.
    Edge instances are cheaper and faster to acquire than the central one, so group
    proposals prefer an edge whenever it offers enough bandwidth. The first edge is a
    high-capacity link, faster than any generated resource.

    Returns:
        list: RSInstance objects, central first.
    """
    if seed is not None:
        random.seed(seed)

    rs_instances = [RSInstance("rs-central", 1000.0 * bandwidth_factor, round(random.uniform(1.0, 3.0), 2),
                               round(random.uniform(0.05, 0.15), 4))]
    for i in range(1, num_rs_instances):
        bandwidth = 2000.0 if i == 1 else random.choice([200.0, 500.0, 1000.0, 2000.0])
        rs_instances.append(RSInstance(
            f"rs-edge-{i}",
            bandwidth * bandwidth_factor,
            round(random.uniform(0.0, 0.9), 2),
            round(random.uniform(0.01, 0.08), 4),
        ))
    return rs_instances


def generate_workflow(num_tasks=20, complexity_level="medium", resources=None, runtime_range=(60.0, 1800.0),
                      data_size_range=(10.0, 500.0), mapping_probability=0.85, seed=None, complexity_params=None):
    """
    Generates a layered random workflow DAG with per-(task, resource) runtimes.

    Args:
        num_tasks (int): Number of tasks.
        complexity_level (str): 'low', 'medium' or 'high' edge density.
        resources (list): (Resource, speed) tuples, e.g. from generate_resources.
        runtime_range (tuple): Base runtime range (s) on a speed-1.0 resource.
        data_size_range (tuple): Input/output size range (MB).
        mapping_probability (float): Chance that a task may run on a given resource.
                                     Every task keeps at least one mapping.
        seed (int, optional): Random seed.
        complexity_params (dict, optional): Overrides for connectivity/min_pred_ratio/max_pred_ratio.

    Returns:
        Workflow: A validated workflow.
    """
    from graph_utils import Workflow  # Import here to avoid circular imports

    if seed is not None:
        random.seed(seed)
    if resources is None:
        resources = generate_resources(seed=seed)
    if num_tasks < 1:
        raise ValueError(f"num_tasks must be positive, got {num_tasks}")

    if complexity_params is None:
        complexity_params = {}

    if complexity_level == "low":
        connectivity = complexity_params.get('connectivity', 0.15)
        min_pred_ratio = complexity_params.get('min_pred_ratio', 0.1)
        max_pred_ratio = complexity_params.get('max_pred_ratio', 0.3)
    elif complexity_level == "medium":
        connectivity = complexity_params.get('connectivity', 0.3)
        min_pred_ratio = complexity_params.get('min_pred_ratio', 0.2)
        max_pred_ratio = complexity_params.get('max_pred_ratio', 0.5)
    else:  # "high"
        connectivity = complexity_params.get('connectivity', 0.5)
        min_pred_ratio = complexity_params.get('min_pred_ratio', 0.3)
        max_pred_ratio = complexity_params.get('max_pred_ratio', 0.7)

    workflow = Workflow()
    for resource, _ in resources:
        workflow.add_resource(resource)

    # Organize tasks into layers
    num_layers = max(1, min(num_tasks, max(3, min(num_tasks // 3, 5))))
    layer_sizes = []
    remaining = num_tasks
    if num_layers == 1:
        layer_sizes.append(remaining)
    else:
        first_layer_size = max(1, num_tasks // (2 * num_layers))
        layer_sizes.append(first_layer_size)
        remaining -= first_layer_size
        for i in range(1, num_layers - 1):
            size = max(1, int(remaining * random.uniform(0.2, 0.4)))
            size = min(size, remaining - (num_layers - 1 - i))
            layer_sizes.append(size)
            remaining -= size
        layer_sizes.append(remaining)

    layers = []
    next_id = 1
    for layer_size in layer_sizes:
        layer = []
        for _ in range(layer_size):
            task_id = f"t{next_id}"
            workflow.add_task(Task(
                task_id,
                round(random.uniform(*data_size_range), 2),
                round(random.uniform(*data_size_range), 2),
            ))
            base_runtime = random.uniform(*runtime_range)
            candidates = [(r, s) for r, s in resources if random.random() < mapping_probability]
            if not candidates:
                candidates = [random.choice(resources)]
            for resource, speed in candidates:
                workflow.add_mapping(task_id, resource.id, round(base_runtime / speed * random.uniform(0.9, 1.1), 2))
            layer.append(task_id)
            next_id += 1
        layers.append(layer)

    # Ensure minimum connectivity between adjacent layers
    for i in range(len(layers) - 1):
        for target in layers[i + 1]:
            workflow.add_dependency(random.choice(layers[i]), target)

    # Add controlled connectivity based on complexity parameters
    for layer_idx in range(1, len(layers)):
        all_possible_preds = [t for i in range(layer_idx) for t in layers[i]]
        for task_id in layers[layer_idx]:
            max_connections = int(len(all_possible_preds) * max_pred_ratio * connectivity)
            min_connections = int(len(all_possible_preds) * min_pred_ratio * connectivity)
            existing = workflow.predecessors(task_id)
            potential_preds = [t for t in all_possible_preds if t not in existing]
            needed = max(0, random.randint(min_connections, max(min_connections, max_connections)) - len(existing))
            for pred in random.sample(potential_preds, min(needed, len(potential_preds))):
                workflow.add_dependency(pred, task_id)

    workflow.validate()
    return workflow


class WorkflowConfiguration:
    """
    Represents a complete scenario bundle for a scheduling simulation run: workflow
    shape, resource and RS catalogs, network quality and budget. Facilitates creating
    and managing diverse test scenarios reproducibly.
    """
    def __init__(self,
                 name: str = "Default Config",           # Unique name for the configuration
                 num_tasks: int = 20,                    # Number of tasks in the workflow DAG
                 num_resources: int = 3,                 # Size of the compute resource catalog
                 num_rs_instances: int = 3,              # Size of the RS catalog (central + edge)
                 complexity_level: str = "medium",       # DAG edge density: low / medium / high
                 bandwidth_factor: float = 1.0,          # Multiplier for all bandwidths
                 cost_limit_multiplier: float = 1.2,     # Budget relative to the all-cheapest seed schedule cost
                 runtime_range: tuple = (60.0, 1800.0),  # Base runtime range (s) on the slowest resource
                 data_size_range: tuple = (10.0, 500.0), # Task input/output size range (MB)
                 exclude_data_transfer_cost: bool = False,  # Bill only declared runtimes
                 seed: int = None):                      # Random seed for reproducibility
        self.name = name
        self.num_tasks = int(num_tasks)
        self.num_resources = int(num_resources)
        self.num_rs_instances = int(num_rs_instances)
        self.complexity_level = complexity_level
        self.bandwidth_factor = float(bandwidth_factor)
        self.cost_limit_multiplier = float(cost_limit_multiplier)
        self.runtime_range = runtime_range
        self.data_size_range = data_size_range
        self.exclude_data_transfer_cost = exclude_data_transfer_cost
        self.seed = seed

    def apply(self):
        """
        Generates the workflow and RS catalog described by this configuration.

        Returns:
            dict: 'workflow', 'rs_instances', 'location_rs', 'exclude_data_transfer_cost',
                  'cost_limit_multiplier' and 'seed'.
        """
        if self.seed is not None:
            random.seed(self.seed)
            np.random.seed(self.seed)

        resources = generate_resources(self.num_resources, self.bandwidth_factor, seed=self.seed)
        rs_instances = generate_rs_instances(self.num_rs_instances, self.bandwidth_factor,
                                             seed=None if self.seed is None else self.seed + 1)
        workflow = generate_workflow(
            num_tasks=self.num_tasks,
            complexity_level=self.complexity_level,
            resources=resources,
            runtime_range=self.runtime_range,
            data_size_range=self.data_size_range,
            seed=None if self.seed is None else self.seed + 2,
        )

        return {
            'workflow': workflow,
            'rs_instances': rs_instances,
            'location_rs': rs_instances[0].id,
            'exclude_data_transfer_cost': self.exclude_data_transfer_cost,
            'cost_limit_multiplier': self.cost_limit_multiplier,
            'seed': self.seed,
        }

    def __str__(self):
        """Return a human-readable string representation of the configuration for logging."""
        billing = "declared runtime only" if self.exclude_data_transfer_cost else "runtime incl. transfer"
        return (
            f"Config Name: {self.name}\n"
            f"  Workflow: {self.num_tasks} tasks, complexity={self.complexity_level}\n"
            f"  Catalog: {self.num_resources} resources, {self.num_rs_instances} RS instances\n"
            f"  Network: BW Factor={self.bandwidth_factor:.2f}\n"
            f"  Budget: Cost Limit Mult={self.cost_limit_multiplier:.2f} ({billing})\n"
            f"  Data Sizes (MB): {self.data_size_range}\n"
            f"  Seed: {self.seed}"
        )


def generate_configs(param_ranges: dict = None, sampling_method: str = 'grid', num_samples: int = None, seed: int = 42):
    """
    Generates a list of WorkflowConfiguration objects, representing different simulation scenarios.
    Sweeps over `param_ranges` (grid or random sampling) and appends a set of predefined,
    specialized scenarios (tight budget, generous budget, slow network, transfer cost excluded).

    Args:
        param_ranges (dict, optional): Maps WorkflowConfiguration argument names to (min, max)
                                       ranges, fixed values or lists of choices.
                                       If None, only specialized configurations are returned.
        sampling_method (str): 'grid' (Cartesian product) or 'random'.
        num_samples (int, optional): Number of samples for random sampling.
        seed (int): Random seed for sampling and scenario generation.

    Returns:
        list: WorkflowConfiguration objects with unique names.
    """
    if sampling_method not in ('grid', 'random'):
        raise ValueError("sampling_method must be 'grid' or 'random'")

    combined_configs = []
    random.seed(seed)
    np.random.seed(seed)

    if param_ranges is not None:
        # Points per continuous parameter in grid search
        discretization = {
            'bandwidth_factor': 4,
            'cost_limit_multiplier': 5,
            'num_tasks': None,
            'num_resources': None,
            'num_rs_instances': None,
        }

        if sampling_method == 'grid':
            param_space = {}
            for param, range_val in param_ranges.items():
                if isinstance(range_val, (list, tuple)) and len(range_val) == 2 and not isinstance(range_val[0], str):
                    min_val, max_val = range_val
                elif isinstance(range_val, (int, float)):
                    min_val, max_val = range_val, range_val
                else:
                    param_space[param] = list(range_val)
                    continue

                if discretization.get(param) is not None:
                    param_space[param] = np.linspace(min_val, max_val, discretization[param])
                elif isinstance(min_val, int) and isinstance(max_val, int):
                    param_space[param] = list(range(min_val, max_val + 1))
                else:
                    param_space[param] = np.linspace(min_val, max_val, 5)

            param_names = list(param_space.keys())
            for values in itertools.product(*(param_space[name] for name in param_names)):
                params = dict(zip(param_names, values))
                name_parts = []
                for param, value in params.items():
                    abbrev = "".join(word[0] for word in param.split('_')).upper()
                    name_parts.append(f"{abbrev}{value:.2f}" if isinstance(value, float) else f"{abbrev}{value}")
                combined_configs.append(WorkflowConfiguration(name="Sweep_" + "_".join(name_parts), seed=seed, **params))

        else:
            if num_samples is None:
                raise ValueError("num_samples must be provided for random sampling.")
            for i in range(num_samples):
                params = {}
                for param, range_val in param_ranges.items():
                    if isinstance(range_val, (list, tuple)) and len(range_val) == 2 and not isinstance(range_val[0], str):
                        min_val, max_val = range_val
                    elif isinstance(range_val, (int, float)):
                        min_val, max_val = range_val, range_val
                    else:
                        params[param] = random.choice(list(range_val))
                        continue

                    if isinstance(min_val, int) and isinstance(max_val, int):
                        params[param] = random.randint(min_val, max_val)
                    else:
                        params[param] = random.uniform(min_val, max_val)
                combined_configs.append(WorkflowConfiguration(name=f"Random_Sample_{i + 1}", seed=seed + i, **params))

    # --- Specialized, predefined configurations ---
    specialized_configs = [
        WorkflowConfiguration(name="Tight-Budget", cost_limit_multiplier=1.02, seed=seed),
        WorkflowConfiguration(name="Generous-Budget", cost_limit_multiplier=2.0, seed=seed),
        WorkflowConfiguration(name="Low-Bandwidth", bandwidth_factor=0.25, seed=seed),
        WorkflowConfiguration(name="Transfer-Cost-Excluded", exclude_data_transfer_cost=True, seed=seed),
        WorkflowConfiguration(name="Dense-Workflow", num_tasks=30, complexity_level="high", seed=seed),
        WorkflowConfiguration(name="Single-RS", num_rs_instances=1, seed=seed),
    ]
    combined_configs.extend(specialized_configs)

    # Ensure unique configuration names
    names = set()
    final_configs = []
    for cfg in combined_configs:
        original_name = cfg.name
        count = 1
        while cfg.name in names:
            cfg.name = f"{original_name}_{count}"
            count += 1
        names.add(cfg.name)
        final_configs.append(cfg)

    return final_configs
