"""Bootstrap scaling strategy and the checks that decide whether etcd may scale."""

from __future__ import annotations

import enum
import logging
from typing import Sequence

from .models import EtcdClient, MemberHealth, NotFoundError
from .topology import is_single_node_topology
from .unsupported_override import is_unsupported_unsafe_etcd

log = logging.getLogger(__name__)

TARGET_NAMESPACE = "openshift-etcd"

# Present on the etcd namespace to select the delayed HA strategy.
DELAYED_HA_BOOTSTRAP_SCALING_STRATEGY_ANNOTATION = "openshift.io/delayed-ha-bootstrap"

BOOTSTRAP_CONFIGMAP_NAME = "bootstrap"
BOOTSTRAP_CONFIGMAP_NAMESPACE = "kube-system"
BOOTSTRAP_MEMBER_NAME = "etcd-bootstrap"


class BootstrapScalingStrategy(str, enum.Enum):
    """The invariants enforced when scaling the etcd cluster."""

    # Scale only when at least 3 nodes are available, during bootstrap and after.
    HA = "HAScalingStrategy"
    # Allow non-HA scaling while bootstrapping; require 3 nodes afterwards.
    DELAYED_HA = "DelayedHAScalingStrategy"
    # The bootstrap node never exists during the cluster's lifecycle.
    BOOTSTRAP_IN_PLACE = "BootstrapInPlaceStrategy"
    # Scale without regard to nodes or quorum.
    UNSAFE = "UnsafeScalingStrategy"


class UnsafeToScaleError(Exception):
    """Raised when cluster conditions make it unsafe to scale etcd."""


def get_bootstrap_scaling_strategy(
    static_pod_client, namespace_lister, infra_lister
) -> BootstrapScalingStrategy:
    """Determine the scaling strategy from operator config, namespace and topology."""
    spec, _, _ = static_pod_client.get_static_pod_operator_state()

    try:
        unsupported_unsafe = is_unsupported_unsafe_etcd(spec)
    except ValueError as exc:
        raise RuntimeError(
            "couldn't determine etcd unsupported override status, "
            f"assuming default HA scaling strategy: {exc}"
        ) from exc

    try:
        namespace = namespace_lister.get(TARGET_NAMESPACE)
    except NotFoundError as exc:
        raise RuntimeError(f"failed to get {TARGET_NAMESPACE} namespace: {exc}") from exc
    has_delayed_ha_annotation = (
        DELAYED_HA_BOOTSTRAP_SCALING_STRATEGY_ANNOTATION in (namespace.annotations or {})
    )

    try:
        single_node = is_single_node_topology(infra_lister)
    except (NotFoundError, ValueError) as exc:
        raise RuntimeError(f"failed to get control plane topology: {exc}") from exc

    if unsupported_unsafe or single_node:
        return BootstrapScalingStrategy.UNSAFE
    if has_delayed_ha_annotation:
        return BootstrapScalingStrategy.DELAYED_HA
    return BootstrapScalingStrategy.HA


def _describe_health(health: Sequence[MemberHealth]) -> str:
    entries = ", ".join(
        f"{item.member.name}(healthy={item.healthy}, error={item.error})" for item in health
    )
    return f"[{entries}]"


def _check_quorum_fault_tolerant(health: Sequence[MemberHealth]) -> None:
    total = len(health)
    quorum = total // 2 + 1
    healthy = sum(1 for item in health if item.healthy)
    if total - quorum < 1:
        raise UnsafeToScaleError(
            f"etcd cluster has quorum of {quorum} which is not fault tolerant: "
            f"{_describe_health(health)}"
        )
    if healthy - quorum < 1:
        raise UnsafeToScaleError(
            f"etcd cluster has quorum of {quorum} and {healthy} healthy members "
            f"which is not fault tolerant: {_describe_health(health)}"
        )


def check_safe_to_scale_cluster(
    configmap_lister,
    static_pod_client,
    namespace_lister,
    infra_lister,
    etcd_client: EtcdClient,
) -> None:
    """Return silently if scaling is safe under the strategy in use; raise UnsafeToScaleError otherwise."""
    try:
        bootstrap_complete = is_bootstrap_complete(
            configmap_lister, static_pod_client, etcd_client
        )
    except Exception as exc:
        raise UnsafeToScaleError(f"failed to determine bootstrap status: {exc}") from exc

    # While bootstrapping, scaling is always considered safe.
    if not bootstrap_complete:
        return

    _, status, _ = static_pod_client.get_static_pod_operator_state()

    try:
        strategy = get_bootstrap_scaling_strategy(
            static_pod_client, namespace_lister, infra_lister
        )
    except Exception as exc:
        raise UnsafeToScaleError(f"failed to get bootstrap scaling strategy: {exc}") from exc

    if strategy is BootstrapScalingStrategy.UNSAFE:
        return

    if strategy in (BootstrapScalingStrategy.HA, BootstrapScalingStrategy.DELAYED_HA):
        minimum_nodes = 3
    else:
        raise UnsafeToScaleError(f"unrecognized scaling strategy {strategy.value!r}")

    node_count = len(status.node_statuses)
    if node_count < minimum_nodes:
        raise UnsafeToScaleError(
            f"{minimum_nodes} nodes are required, but only {node_count} are available"
        )

    try:
        health = etcd_client.member_health()
    except Exception as exc:
        raise UnsafeToScaleError(f"couldn't determine member health: {exc}") from exc

    _check_quorum_fault_tolerant(health)

    log.debug(
        "node count %d satisfies minimum of %d required by the %s bootstrap scaling strategy",
        node_count,
        minimum_nodes,
        strategy.value,
    )


def is_bootstrap_complete(configmap_lister, static_pod_client, etcd_client: EtcdClient) -> bool:
    """Return True once bootstrap has finished and the bootstrap member is gone."""
    try:
        configmap = configmap_lister.get(BOOTSTRAP_CONFIGMAP_NAME, BOOTSTRAP_CONFIGMAP_NAMESPACE)
    except NotFoundError:
        # A configmap deleted after bootstrap finished gives a false negative here.
        log.debug(
            "bootstrap considered incomplete because the %s/%s configmap wasn't found",
            BOOTSTRAP_CONFIGMAP_NAMESPACE,
            BOOTSTRAP_CONFIGMAP_NAME,
        )
        return False

    status_value = (configmap.data or {}).get("status", "")
    if status_value != "complete":
        log.debug("bootstrap considered incomplete because status is %r", status_value)
        return False

    _, status, _ = static_pod_client.get_static_pod_operator_state()
    if status.latest_available_revision == 0:
        return False
    if any(
        node.current_revision != status.latest_available_revision
        for node in status.node_statuses
    ):
        log.debug(
            "bootstrap considered incomplete because revision %d is still in progress",
            status.latest_available_revision,
        )
        return False

    if any(member.name == BOOTSTRAP_MEMBER_NAME for member in etcd_client.member_list()):
        log.debug("(%s) member is still present in the etcd cluster membership", BOOTSTRAP_MEMBER_NAME)
        return False

    return True