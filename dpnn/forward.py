import logging
import math
import numbers
import numpy as np
from collections.abc import Mapping
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
from .activations import apply_activation
from .layer import Layer
from .topology import Connection, Routing

logger = logging.getLogger(__name__)


FLOOR_ACTIVATION = 0.1
SECONDARY_FACTOR = 0.5


@dataclass(frozen=True)
class Path:
    """
    A connection that carried signal during the current forward pass.

    `layer` is the source layer index (and therefore the connection index).
    `magnitude` is the absolute size of the term the weight multiplied,
    `sign` the sign of the source activation.
    """
    layer: int
    source: int
    target: int
    magnitude: float
    sign: int
    routing: Routing
    is_primary: bool
    factor: float = 1.0

    @property
    def input_term(self) -> float:
        """Value the weight was multiplied by."""
        if self.routing is Routing.EXPAND:
            return self.magnitude
        return self.sign * self.magnitude

    @property
    def backward_factor(self) -> float:
        """Derivative of `input_term` with respect to the source activation."""
        if self.routing is Routing.EXPAND:
            return float(self.sign)
        return self.factor

    @property
    def key(self) -> Tuple[int, int, int]:
        return self.layer, self.source, self.target


def _to_float(value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def sanitize_input(raw, size: int) -> Tuple[np.ndarray, Optional[str]]:
    """
    Normalize whatever the caller passed into a finite vector of `size` floats.

    A sequence of the right length keeps its entries, with non-numeric or
    non-finite ones replaced by 0. Anything else becomes a zero vector: a
    scalar seeds element 0, a mapping or object seeds elements 0 and 2 from
    its `x` and `y` fields.

    Args:
        raw: Caller-supplied state
        size: Expected input width

    Returns:
        (vector, note) where note describes a substitution, or None
    """
    if isinstance(raw, np.ndarray) and raw.ndim == 0:
        raw = raw.item()

    if isinstance(raw, (str, bytes)) or isinstance(raw, numbers.Number):
        vector = np.zeros(size)
        seed = _to_float(raw)
        if size > 0:
            vector[0] = seed
        return vector, f"expected sequence of length {size}, got scalar {raw!r}"

    if isinstance(raw, (list, tuple, np.ndarray)):
        values = np.asarray(raw, dtype=object) if not isinstance(raw, np.ndarray) else raw
        if values.ndim == 1 and len(values) == size:
            return np.array([_to_float(v) for v in values], dtype=float), None
        return np.zeros(size), f"expected sequence of length {size}, got shape {np.shape(values)}"

    if raw is None:
        return np.zeros(size), f"expected sequence of length {size}, got None"

    vector = np.zeros(size)
    if isinstance(raw, Mapping):
        fields = {key: raw[key] for key in ('x', 'y') if key in raw}
    else:
        fields = {key: getattr(raw, key) for key in ('x', 'y') if hasattr(raw, key)}
    if 'x' in fields and size > 0:
        vector[0] = _to_float(fields['x'])
    if 'y' in fields and size > 2:
        vector[2] = _to_float(fields['y'])
    return vector, f"expected sequence of length {size}, got {type(raw).__name__}"


class ForwardEngine:
    """
    Stage-aware forward pass over the diamond.

    Each destination layer is filled from the active nodes of the layer before
    it, using the routing rule stored on the connection between them. Every
    nonzero contribution is recorded as a Path; the path list is rebuilt from
    scratch on every call.
    """

    def __init__(self, floor_activation: float = FLOOR_ACTIVATION):
        self.floor_activation = floor_activation
        self.substitutions = 0

    def propagate(self,
                  layers: Sequence[Layer],
                  connections: Sequence[Connection],
                  raw_input) -> Tuple[np.ndarray, List[Path]]:
        """
        Run one forward pass, updating layer values and activation flags in place.

        Args:
            layers: Network layers, input first
            connections: Connection between each adjacent pair
            raw_input: State vector from the environment (sanitized here)

        Returns:
            (output values, paths that fired)
        """
        for layer in layers:
            layer.reset_state()

        input_layer = layers[0]
        vector, note = sanitize_input(raw_input, input_layer.size)
        if note is not None:
            self.substitutions += 1
            logger.warning("Invalid input: %s; substituted %s", note, vector.tolist())

        input_layer.values[:] = vector
        input_layer.pre_activations[:] = vector
        input_layer.active[:] = vector != 0

        paths: List[Path] = []
        for l in range(1, len(layers)):
            paths.extend(self._fill_layer(layers[l - 1], layers[l], connections[l - 1]))

        return layers[-1].values.copy(), paths

    def _fill_layer(self, source: Layer, dest: Layer, connection: Connection) -> List[Path]:
        accumulated = np.zeros(dest.size)
        reached = np.zeros(dest.size, dtype=bool)
        pending: List[Path] = []

        def contribute(i: int, j: int, term: float, magnitude: float, sign: int,
                       is_primary: bool, factor: float):
            contribution = connection.weights[i, j] * term
            if contribution == 0 or not math.isfinite(contribution):
                return
            accumulated[j] += contribution
            reached[j] = True
            pending.append(Path(
                layer=connection.index,
                source=i,
                target=j,
                magnitude=magnitude,
                sign=sign,
                routing=connection.routing,
                is_primary=is_primary,
                factor=factor
            ))

        routing = connection.routing
        for i in source.active_indices():
            a = float(source.values[i])
            sign = 1 if a >= 0 else -1

            if routing is Routing.BRIDGE:
                j = connection.target_index(i)
                contribute(i, j, a, abs(a), sign, True, 1.0)

            elif routing is Routing.EXPAND:
                j = (2 * i) % dest.size if a >= 0 else (2 * i + 1) % dest.size
                contribute(i, j, abs(a), abs(a), sign, True, 1.0)

            elif routing is Routing.MESH:
                for j in range(dest.size):
                    primary = i == j
                    factor = 1.0 if primary or not connection.split else SECONDARY_FACTOR
                    contribute(i, j, a * factor, abs(a) * factor, sign, primary, factor)

            elif routing is Routing.CONTRACT:
                j = connection.target_index(i)
                if j < dest.size and connection.fan_in[j] > 0:
                    factor = 1.0 / connection.fan_in[j]
                    contribute(i, j, a * factor, abs(a) * factor, sign, True, factor)

        is_output = not dest.is_hidden
        for j in np.flatnonzero(reached):
            pre = accumulated[j] + connection.biases[j]
            value = pre if is_output else apply_activation(dest.node_activations[j], pre)
            if not math.isfinite(value):
                logger.warning("Non-finite activation in layer %d, node %d - silenced", connection.index + 1, j)
                pre, value = 0.0, 0.0
            dest.pre_activations[j] = pre
            dest.values[j] = value
            dest.active[j] = value != 0

        if dest.is_hidden and not dest.active.any():
            dest.values[0] = self.floor_activation
            dest.pre_activations[0] = self.floor_activation
            dest.active[0] = True

        return [path for path in pending if dest.active[path.target]]
