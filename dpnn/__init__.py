"""
Diamond-Path Neural Network Package

An online learner with a fixed expand / fully-connect / contract topology,
confidence-weighted path-restricted training and runtime structural plasticity.
"""

from .network import DiamondNetwork
from .layer import Layer, Stage
from .topology import Connection, Routing, build_topology
from .forward import ForwardEngine, Path
from .trainer import ConfidenceTrainer, LearningParameters
from .plasticity import PlasticityManager
from .integrity import IntegrityGuard, IntegrityReport, NetworkStats
from .movement import MovementEvaluator, choose_action
from .activations import Activation
from .errors import DpnnError, SnapshotError

__all__ = [
    'DiamondNetwork',
    'Layer',
    'Stage',
    'Connection',
    'Routing',
    'build_topology',
    'ForwardEngine',
    'Path',
    'ConfidenceTrainer',
    'LearningParameters',
    'PlasticityManager',
    'IntegrityGuard',
    'IntegrityReport',
    'NetworkStats',
    'MovementEvaluator',
    'choose_action',
    'Activation',
    'DpnnError',
    'SnapshotError',
]
