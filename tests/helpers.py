STATE = [1.0, 1.0, 0.0, 0.0]


def set_uniform(network, weight, bias=0.0):
    """Give every connection the same weight and bias."""
    for connection in network.connections:
        connection.weights[:] = weight
        connection.biases[:] = bias


def nonzero_central_weights(network):
    return sum(c.nonzero_weight_count() for c in network.plasticity.central_connections(network))


def snapshot_arrays(network):
    """Copies of every learned array, for before/after comparisons."""
    return [(c.weights.copy(), c.biases.copy(), c.confidence.copy()) for c in network.connections]
