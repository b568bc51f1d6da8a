"""Checks whether the etcd cluster can tolerate losing a member during a rollout."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .bootstrap import check_safe_to_scale_cluster
from .models import EtcdClient


class AlwaysSafeQuorumChecker:
    """A checker that always reports a revision update as safe."""

    def is_safe_to_update_revision(self) -> bool:
        return True


@dataclass
class QuorumCheck:
    """Checks quorum by applying the bootstrap scaling rules."""

    configmap_lister: Any
    namespace_lister: Any
    infra_lister: Any
    operator_client: Any
    etcd_client: EtcdClient

    def is_safe_to_update_revision(self) -> bool:
        """Return True if one member may be lost; raise UnsafeToScaleError otherwise."""
        check_safe_to_scale_cluster(
            self.configmap_lister,
            self.operator_client,
            self.namespace_lister,
            self.infra_lister,
            self.etcd_client,
        )
        return True


def new_quorum_checker(
    configmap_lister, namespace_lister, infra_lister, operator_client, etcd_client
) -> QuorumCheck:
    return QuorumCheck(
        configmap_lister=configmap_lister,
        namespace_lister=namespace_lister,
        infra_lister=infra_lister,
        operator_client=operator_client,
        etcd_client=etcd_client,
    )