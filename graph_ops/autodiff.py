"""Backward graph construction from per-op gradient linkage."""

import logging
from typing import Dict, List, Mapping

from .graph import Graph, SymbolicVariable
from .ops.math_ops import AddN

logger = logging.getLogger(__name__)


class GradientError(Exception):
    """Raised when an op's gradient does not match its inputs."""

    pass


def _accumulate(
    graph: Graph,
    grads: Dict[str, SymbolicVariable],
    var: SymbolicVariable,
    grad: SymbolicVariable,
) -> None:
    existing = grads.get(var.name)
    if existing is None:
        grads[var.name] = grad
        return
    total = graph.add_op(AddN(inputs=(existing, grad)), name=f"{var.name}_grad_sum")[0]
    grads[var.name] = total


def build_gradients(
    graph: Graph,
    output_grads: Mapping[str, SymbolicVariable],
) -> Dict[str, SymbolicVariable]:
    """Add the backward pass of ``graph`` to the same graph.

    Each forward op whose outputs have a gradient is asked for its input
    gradients exactly once, in reverse registration order. Variables used by
    several ops get their gradients summed with ``AddN``.

    Args:
        graph: The graph holding the forward ops.
        output_grads: Gradient variable for each differentiated output,
            keyed by output variable name.

    Returns:
        Gradient variable for every variable reached, keyed by variable name
        (including the entries of ``output_grads``).

    Raises:
        GradientError: If an op returns the wrong number of gradients.
        KeyError: If ``output_grads`` names a variable not in the graph.
    """
    for name, grad in output_grads.items():
        graph.get_variable(name)
        if not graph.has_variable(grad):
            raise KeyError(f"Gradient for '{name}' is not a variable of graph '{graph.name}'")

    grads: Dict[str, SymbolicVariable] = dict(output_grads)
    forward_ops = graph.ops

    for op_name, record in reversed(forward_ops):
        outputs = graph.outputs_of(op_name)
        if not any(out.name in grads for out in outputs):
            continue
        missing = [out.name for out in outputs if out.name not in grads]
        if missing:
            raise GradientError(f"Op '{op_name}' has outputs without gradient: {missing}")

        input_grads: List[SymbolicVariable] = record.gradient(graph, [grads[out.name] for out in outputs])
        if len(input_grads) != len(record.inputs):
            raise GradientError(
                f"Op '{op_name}' ({record.op_name}) returned {len(input_grads)} gradients "
                f"for {len(record.inputs)} inputs"
            )
        for var, grad in zip(record.inputs, input_grads):
            _accumulate(graph, grads, var, grad)
        logger.debug("Differentiated %s (%s)", op_name, record.op_name)

    return grads
