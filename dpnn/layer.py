import numpy as np
from enum import Enum
from typing import Dict, List
from .activations import Activation, DEFAULT_ACTIVATION


NEUTRAL_CONFIDENCE = 0.5


class Stage(Enum):
    """Position of a layer in the diamond; decides the routing rule into it."""
    INPUT = "input"
    EXPANSION = "expansion"
    CENTRAL = "central"
    CONTRACTION = "contraction"
    OUTPUT = "output"


class Layer:
    """
    One stage of nodes in the diamond.

    Attributes:
        stage: Stage kind of this layer
        size: Number of nodes (fixed for the network's lifetime)
        values: Last computed activation of every node
        pre_activations: Weighted sum plus bias before the nonlinearity
        active: Whether each node fired this tick
        node_activations: Nonlinearity assigned to each node
        node_confidence: Per-node reliability estimate, may go negative transiently
    """

    def __init__(self, stage: Stage, size: int):
        """
        Initialize a layer with all nodes silent.

        Args:
            stage: Stage kind of this layer
            size: Number of nodes
        """
        self.stage = stage
        self.size = size

        self.values = np.zeros(size)
        self.pre_activations = np.zeros(size)
        self.active = np.zeros(size, dtype=bool)

        self.node_activations: List[Activation] = [DEFAULT_ACTIVATION] * size
        self.node_confidence = np.full(size, NEUTRAL_CONFIDENCE)

    @property
    def is_hidden(self) -> bool:
        return self.stage not in (Stage.INPUT, Stage.OUTPUT)

    def reset_state(self):
        """Clear per-tick values and activation flags (learned state is kept)."""
        self.values.fill(0.0)
        self.pre_activations.fill(0.0)
        self.active.fill(False)

    def active_indices(self) -> List[int]:
        return [int(i) for i in np.flatnonzero(self.active)]

    def inactive_indices(self) -> List[int]:
        return [int(i) for i in np.flatnonzero(~self.active)]

    def get_active_count(self) -> int:
        return int(np.count_nonzero(self.active))

    def set_activation(self, index: int, kind: Activation):
        self.node_activations[index] = kind

    def get_activation_counts(self) -> Dict[str, int]:
        """Count how many nodes of this layer use each nonlinearity."""
        counts = {kind.value: 0 for kind in Activation}
        for kind in self.node_activations:
            counts[kind.value] += 1
        return counts

    def get_layer_stats(self) -> Dict:
        return {
            'stage': self.stage.value,
            'size': self.size,
            'active_nodes': self.get_active_count(),
            'avg_node_confidence': float(np.mean(self.node_confidence)) if self.size else 0.0,
            'activation_counts': self.get_activation_counts(),
        }

    def __repr__(self):
        return f"Layer({self.stage.value}, size={self.size}, active={self.get_active_count()})"

