import pytest

from etcdmembership.models import Infrastructure, NotFoundError
from etcdmembership.store import ObjectStore
from etcdmembership.topology import (
    TopologyMode,
    get_control_plane_topology,
    is_single_node_topology,
)


def _lister(topology):
    return ObjectStore([Infrastructure(name="cluster", control_plane_topology=topology)])


def test_highly_available_is_not_single_node():
    lister = _lister(TopologyMode.HIGHLY_AVAILABLE)
    assert get_control_plane_topology(lister) == TopologyMode.HIGHLY_AVAILABLE
    assert is_single_node_topology(lister) is False


def test_single_replica_is_single_node():
    assert is_single_node_topology(_lister(TopologyMode.SINGLE_REPLICA)) is True


def test_plain_string_topology_compares_with_mode():
    assert is_single_node_topology(_lister(TopologyMode.SINGLE_REPLICA.value)) is True


def test_unset_topology_is_an_error():
    with pytest.raises(ValueError, match="ControlPlaneTopology was not set"):
        get_control_plane_topology(_lister(""))


def test_missing_infrastructure_is_not_found():
    with pytest.raises(NotFoundError):
        is_single_node_topology(ObjectStore())