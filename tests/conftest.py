import pytest
from dpnn import DiamondNetwork
from helpers import set_uniform


@pytest.fixture
def network():
    return DiamondNetwork(4, 4, seed=1234)


@pytest.fixture
def uniform_network():
    """Every weight 0.1 and every bias 0, so routing is easy to follow by hand."""
    net = DiamondNetwork(4, 4, seed=7)
    set_uniform(net, 0.1)
    return net
