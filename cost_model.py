#cost_model.py

from data import Mapping


class CostModel:
    """
    Runtime and monetary cost of task mappings.

    Data sizes are in MB and bandwidths in Mbit/s, so a transfer of `d` MB over a
    link of `b` Mbit/s takes d / (b / 8) seconds. Hourly prices are converted to
    per-second rates.
    """

    def __init__(self, workflow, scheduler_input):
        self.workflow = workflow
        self.scheduler_input = scheduler_input
        self.exclude_data_transfer_cost = scheduler_input.exclude_data_transfer_cost

    def transfer_time(self, mapping: Mapping, consider_input=True, consider_output=True):
        """
        Time to move the task's input and/or output between its resource and its RS instance.
        The slower of the two links bounds the transfer.
        """
        task = self.workflow.task(mapping.task)
        resource = self.workflow.resource(mapping.resource)
        rs = self.scheduler_input.rs_instance(mapping.rs_instance)

        data_mb = (task.input_mb if consider_input else 0.0) + (task.output_mb if consider_output else 0.0)
        return data_mb / min(resource.bandwidth / 8.0, rs.bandwidth / 8.0)

    def transfer_time_between(self, data_mb, rs_a, rs_b):
        """Time to move `data_mb` between two RS instances, given by id."""
        bandwidth_a = self.scheduler_input.rs_instance(rs_a).bandwidth
        bandwidth_b = self.scheduler_input.rs_instance(rs_b).bandwidth
        return data_mb / min(bandwidth_a / 8.0, bandwidth_b / 8.0)

    def declared_runtime(self, mapping: Mapping):
        return self.workflow.runtime(mapping.task, mapping.resource)

    def runtime(self, mapping: Mapping):
        """acquisition delay + declared runtime + input/output transfer time."""
        resource = self.workflow.resource(mapping.resource)
        return resource.acquisition_delay + self.declared_runtime(mapping) + self.transfer_time(mapping)

    def cost(self, mapping: Mapping):
        """
        Billed cost of a single mapping. The acquisition delay is never billed; with
        exclude_data_transfer_cost only the declared runtime is.
        """
        resource = self.workflow.resource(mapping.resource)
        rate = resource.cost_per_hour / 3600
        if not self.exclude_data_transfer_cost:
            return (self.runtime(mapping) - resource.acquisition_delay) * rate
        return self.declared_runtime(mapping) * rate

    def total_cost(self, mappings, epsilon=0.0):
        """Cost of a set of mappings is additive; epsilon carries extra RS cost."""
        return sum(self.cost(mapping) for mapping in mappings) + epsilon

    def rs_rate(self, rs_id):
        """Per-second price of an RS instance."""
        return self.scheduler_input.rs_instance(rs_id).cost_per_hour / 3600.0


def resource_minimizing_communication(reference_resource, rs_instances):
    """
    Picks the RS instance for a group remapping: among instances at least as fast as
    the reference resource, the one with the lowest acquisition delay, then the lowest
    hourly cost. Remaining ties go to the first instance in catalog order.

    Args:
        reference_resource (Resource): Resource the anchor task is moved to.
        rs_instances (iterable): Ordered RS catalog.

    Returns:
        RSInstance or None if no instance offers enough bandwidth.
    """
    candidates = [rs for rs in rs_instances if rs.bandwidth >= reference_resource.bandwidth]
    if not candidates:
        return None

    min_delay = min(rs.acquisition_delay for rs in candidates)
    candidates = [rs for rs in candidates if rs.acquisition_delay == min_delay]

    min_cost = min(rs.cost_per_hour for rs in candidates)
    candidates = [rs for rs in candidates if rs.cost_per_hour == min_cost]

    return candidates[0]
