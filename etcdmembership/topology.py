"""Control plane topology lookup."""

from __future__ import annotations

import enum
import logging

from .models import NotFoundError

log = logging.getLogger(__name__)

INFRASTRUCTURE_CLUSTER_NAME = "cluster"


class TopologyMode(str, enum.Enum):
    HIGHLY_AVAILABLE = "HighlyAvailable"
    SINGLE_REPLICA = "SingleReplica"
    EXTERNAL = "External"


def get_control_plane_topology(infra_lister) -> str:
    """Return the control plane topology recorded on the cluster infrastructure."""
    try:
        infra = infra_lister.get(INFRASTRUCTURE_CLUSTER_NAME)
    except NotFoundError:
        log.warning("Failed to get infrastructure resource %s", INFRASTRUCTURE_CLUSTER_NAME)
        raise
    if not infra.control_plane_topology:
        raise ValueError("ControlPlaneTopology was not set")
    return infra.control_plane_topology


def is_single_node_topology(infra_lister) -> bool:
    """Return True if the control plane runs on a single replica."""
    return get_control_plane_topology(infra_lister) == TopologyMode.SINGLE_REPLICA