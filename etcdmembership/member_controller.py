"""Adds etcd learner members for new control plane nodes and promotes them."""

from __future__ import annotations

import ipaddress
import logging
from typing import Optional, Sequence

from .bootstrap import TARGET_NAMESPACE
from .common import (
    MACHINE_DELETION_HOOK_NAME,
    MACHINE_DELETION_HOOK_OWNER,
    current_member_machines_with_deletion_hooks,
    find_machine_by_node_internal_ip,
    has_machine_deletion_hook,
    index_machines_by_node_internal_ip,
    member_to_node_internal_ip,
    voting_member_ip_set,
)
from .models import (
    NODE_INTERNAL_IP,
    AggregateError,
    EtcdClient,
    LabelSelector,
    Member,
    Network,
    Node,
    NotFoundError,
)

log = logging.getLogger(__name__)

CLUSTER_NETWORK_NAME = "cluster"
ETCD_PEER_PORT = "2380"
ETCD_CONTAINER_NAME = "etcd"

# Message etcd returns when a learner has not yet caught up with the leader's log.
ERR_LEARNER_NOT_READY = "etcdserver: can only promote a learner member which is in sync with leader"


def is_url_mapped_to_member(peer_url: str, members: Sequence[Member]) -> bool:
    """Return True if the peer URL is the first peer URL of any member."""
    return any(peer_url == member.peer_urls[0] for member in members)


def _join_host_port(host: str, port: str) -> str:
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


def _preferred_internal_ip(network: Network, node: Node) -> str:
    """Pick the node's internal IP of the same family as the cluster service network."""
    if not network.service_network:
        raise ValueError("network has no service network configured")
    family = ipaddress.ip_network(network.service_network[0], strict=False).version
    for addr in node.addresses:
        if addr.type != NODE_INTERNAL_IP:
            continue
        try:
            ip = ipaddress.ip_address(addr.address)
        except ValueError:
            continue
        if ip.version == family:
            return addr.address
    raise ValueError(f"no matching IPv{family} internal address found for node {node.name}")


class ClusterMemberController:
    """Adds one eligible node as a learner member and promotes ready learners.

    Members are only added while every existing member is healthy.
    """

    def __init__(
        self,
        etcd_client: EtcdClient,
        pod_lister,
        network_lister,
        machine_api_checker,
        machine_lister,
        machine_selector: LabelSelector,
        node_lister,
        node_selector: LabelSelector,
    ) -> None:
        self.etcd_client = etcd_client
        self.pod_lister = pod_lister
        self.network_lister = network_lister
        self.machine_api_checker = machine_api_checker
        self.machine_lister = machine_lister
        self.machine_selector = machine_selector
        self.node_lister = node_lister
        self.node_selector = node_selector

    def sync(self) -> None:
        """Run one reconciliation pass."""
        self.reconcile_members()

    def reconcile_members(self) -> None:
        """Add a learner for the next eligible node, then promote ready learners."""
        try:
            unhealthy = self.etcd_client.unhealthy_members()
        except Exception as exc:
            raise RuntimeError(f"could not get list of unhealthy members: {exc}") from exc
        if unhealthy:
            log.debug("unhealthy members: %r", unhealthy)
            raise RuntimeError("unhealthy members found during reconciling members")

        errors: list[BaseException] = []
        peer_url = ""
        try:
            peer_url, lookup_errors = self._next_peer_url()
            aggregate = AggregateError.from_errors(lookup_errors)
            if aggregate is not None:
                raise aggregate
        except Exception as exc:
            errors.append(RuntimeError(f"could not get etcd peerURL to add :{exc}"))

        if peer_url:
            try:
                self.etcd_client.member_add_as_learner(peer_url)
            except Exception as exc:
                errors.append(RuntimeError(f"failed to add learner member :{exc}"))

        try:
            self.ensure_etcd_learner_promotion()
        except Exception as exc:
            errors.append(RuntimeError(f"failed to promote learner: {exc}"))

        aggregate = AggregateError.from_errors(errors)
        if aggregate is not None:
            raise aggregate

    def get_etcd_peer_url_to_add(self) -> str:
        """Return the peer URL of the next node to add as a learner, or "" if none.

        Failures on individual nodes are collected and raised as an AggregateError.
        """
        peer_url, errors = self._next_peer_url()
        aggregate = AggregateError.from_errors(errors)
        if aggregate is not None:
            raise aggregate
        return peer_url

    def _next_peer_url(self) -> tuple[str, list[BaseException]]:
        nodes = self.node_lister.list(self.node_selector)
        try:
            candidates = self.nodes_without_voting_members(nodes)
        except Exception as exc:
            raise RuntimeError(f"failed to map nodes to voting members: {exc}") from exc
        if not candidates:
            return "", []

        members = self.etcd_client.member_list()
        errors: list[BaseException] = []
        for node in candidates:
            if node.deletion_timestamp is not None:
                log.info("Ignoring node (%s) for new member addition as it's pending deletion", node.name)
                continue

            try:
                peer_url = self.peer_url_for_node(node)
            except Exception as exc:
                errors.append(RuntimeError(f"failed to get peerURL for node: {exc}"))
                continue

            if is_url_mapped_to_member(peer_url, members):
                continue

            try:
                machine_api_functional = self.machine_api_checker.is_functional()
            except Exception as exc:
                errors.append(RuntimeError(f"failed to determine Machine API availability: {exc}"))
                continue

            if not machine_api_functional:
                # Without a Machine API there are no hooks or deletion marks to consult.
                try:
                    running_not_ready = self.is_etcd_container_running_not_ready(node)
                except Exception as exc:
                    errors.append(
                        RuntimeError(f"failed to check if pod is running and not ready: {exc}")
                    )
                    continue
                if not running_not_ready:
                    continue
                return peer_url, []

            try:
                internal_ip = self.internal_ip_for_node(node)
            except Exception as exc:
                errors.append(RuntimeError(f"failed to get internal IP for node: {exc}"))
                continue
            try:
                machine = find_machine_by_node_internal_ip(
                    internal_ip, self.machine_selector, self.machine_lister
                )
            except Exception as exc:
                raise RuntimeError(f"failed to get machine for node ({node.name}): {exc}") from exc
            if machine is None:
                log.info(
                    "Ignoring node (%s) for scale-up: no Machine found referencing this node's internal IP (%s)",
                    node.name,
                    internal_ip,
                )
                continue
            if machine.deletion_timestamp is not None:
                log.info(
                    "Ignoring node (%s) for scale-up since its machine (%s) is pending deletion",
                    node.name,
                    machine.name,
                )
                continue
            if not has_machine_deletion_hook(machine):
                log.info(
                    "Ignoring node (%s) for scale-up since its machine (%s) is missing the PreDrain "
                    "deletion hook (name: %s, owner: %s)",
                    node.name,
                    machine.name,
                    MACHINE_DELETION_HOOK_NAME,
                    MACHINE_DELETION_HOOK_OWNER,
                )
                continue

            # A running but unready pod is waiting to join; checking it keeps two
            # unstarted members from being added at once.
            try:
                running_not_ready = self.is_etcd_container_running_not_ready(node)
            except Exception as exc:
                errors.append(RuntimeError(f"failed to check if pod is running and not ready: {exc}"))
                continue
            if not running_not_ready:
                continue

            return peer_url, errors
        return "", errors

    def ensure_etcd_learner_promotion(self) -> None:
        """Promote every learner member whose machine allows it."""
        nodes = self.node_lister.list(self.node_selector)
        try:
            candidates = self.nodes_without_voting_members(nodes)
        except Exception as exc:
            raise RuntimeError(f"failed to map nodes to voting members: {exc}") from exc
        if not candidates:
            return

        try:
            members = self.etcd_client.member_list()
        except Exception as exc:
            raise RuntimeError(f"could not get etcd member list: {exc}") from exc

        errors: list[BaseException] = []
        for member in members:
            try:
                promote = self.should_promote(member)
            except Exception as exc:
                errors.append(
                    RuntimeError(f"failed to decide on promotion for member ({member.name}): {exc}")
                )
                continue
            if not promote:
                continue
            try:
                self.etcd_client.member_promote(member)
            except Exception as exc:
                if str(exc) == ERR_LEARNER_NOT_READY:
                    log.info(
                        "Not ready for promotion: etcd learner member (%s) is not yet in sync with leader's log",
                        member.peer_urls[0],
                    )
                    continue
                errors.append(
                    RuntimeError(f"failed to promote learner member ({member.peer_urls[0]}): {exc}")
                )

        aggregate = AggregateError.from_errors(errors)
        if aggregate is not None:
            raise aggregate

    def should_promote(self, member: Member) -> bool:
        """Return True for a learner whose machine carries the hook and is not being deleted."""
        if not member.is_learner:
            return False

        try:
            machine_api_functional = self.machine_api_checker.is_functional()
        except Exception as exc:
            raise RuntimeError(f"failed to determine Machine API availability: {exc}") from exc
        if not machine_api_functional:
            return True

        try:
            node_ip = member_to_node_internal_ip(member)
        except Exception as exc:
            raise RuntimeError(f"failed to get node IP from member's PeerURL: {exc}") from exc
        try:
            machines = current_member_machines_with_deletion_hooks(
                self.machine_selector, self.machine_lister
            )
        except Exception as exc:
            raise RuntimeError(f"failed to get master machines: {exc}") from exc

        machine = index_machines_by_node_internal_ip(machines).get(node_ip)
        if machine is None:
            log.info(
                "Ignoring member (%s) for promotion: no Machine found referencing this member's IP (%s)",
                member.name,
                node_ip,
            )
            return False
        if machine.deletion_timestamp is not None:
            log.info(
                "Ignoring member (%s) for promotion since its machine (%s) is pending deletion",
                member.name,
                machine.name,
            )
            return False
        return True

    def is_etcd_container_running_not_ready(self, node: Node) -> bool:
        """Return True if the node's etcd container is running but not yet ready."""
        pod_name = f"etcd-{node.name}"
        try:
            pod = self.pod_lister.get(pod_name, TARGET_NAMESPACE)
        except NotFoundError:
            return False

        status = next(
            (cs for cs in pod.container_statuses if cs.name == ETCD_CONTAINER_NAME), None
        )
        running = status is not None and status.running
        ready = status is not None and status.ready
        if not running or ready:
            log.info(
                "Skipping %s as the etcd container is in incorrect state, running = %s, ready = %s",
                pod_name,
                running,
                ready,
            )
            return False
        return True

    def nodes_without_voting_members(self, nodes: Sequence[Node]) -> list[Node]:
        """Return the nodes whose internal IP belongs to no voting member."""
        try:
            voting_ips = voting_member_ip_set(self.etcd_client)
        except Exception as exc:
            raise RuntimeError(f"failed to get the set of voting members: {exc}") from exc
        return [node for node in nodes if self.internal_ip_for_node(node) not in voting_ips]

    def peer_url_for_node(self, node: Node) -> str:
        """Build the etcd peer URL from the node's internal IP."""
        return f"https://{_join_host_port(self.internal_ip_for_node(node), ETCD_PEER_PORT)}"

    def internal_ip_for_node(self, node: Node) -> str:
        """Return the node's internal IP in the service network's family, without brackets."""
        try:
            network: Optional[Network] = self.network_lister.get(CLUSTER_NETWORK_NAME)
        except NotFoundError as exc:
            raise RuntimeError(f"failed to list cluster network: {exc}") from exc
        try:
            return _preferred_internal_ip(network, node)
        except ValueError as exc:
            raise RuntimeError(
                f"failed to get escaped preferred internal IP for node: {exc}"
            ) from exc