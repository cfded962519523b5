import math
from enum import Enum


LEAKY_SLOPE = 0.01
ELU_ALPHA = 0.1


class Activation(Enum):
    """Nonlinearities a hidden node can carry. Stored per node, mutated at runtime."""
    LEAKY_RELU = "leakyrelu"
    RELU = "relu"
    SIGMOID = "sigmoid"
    TANH = "tanh"
    SWISH = "swish"
    ELU = "elu"


DEFAULT_ACTIVATION = Activation.LEAKY_RELU


def _sigmoid(x: float) -> float:
    # Split on sign so exp() never overflows
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)


def apply_activation(kind: Activation, x: float) -> float:
    """
    Apply a node nonlinearity to a single pre-activation value.

    Args:
        kind: Nonlinearity assigned to the node
        x: Pre-activation (weighted sum plus bias)

    Returns:
        Activated value
    """
    if kind is Activation.RELU:
        return x if x > 0 else 0.0
    if kind is Activation.SIGMOID:
        return _sigmoid(x)
    if kind is Activation.TANH:
        return math.tanh(x)
    if kind is Activation.SWISH:
        return x * _sigmoid(x)
    if kind is Activation.ELU:
        return x if x > 0 else ELU_ALPHA * (math.exp(x) - 1.0)
    return x if x > 0 else LEAKY_SLOPE * x


def rectifier_gate(pre_activation: float) -> float:
    """Derivative gate used for every hidden node: 1 if the pre-activation is positive."""
    return 1.0 if pre_activation > 0 else 0.0
