"""Helpers on machines, members and operator configuration."""

from __future__ import annotations

import copy
from typing import Any, Iterable, Optional
from urllib.parse import urlsplit

import yaml

from .models import (
    NODE_INTERNAL_IP,
    EtcdClient,
    LabelSelector,
    Machine,
    Member,
    RawConfig,
)

MACHINE_DELETION_HOOK_NAME = "EtcdQuorumOperator"
MACHINE_DELETION_HOOK_OWNER = "clusteroperator/etcd"

CONTROL_PLANE_REPLICAS_PATH = ("controlPlane", "replicas")


def _merge(base: dict, override: dict) -> dict:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def merge_process_config(*configs: RawConfig) -> dict:
    """Merge JSON or YAML configs in order; later values win, mappings merge deeply."""
    merged: dict = {}
    for raw in configs:
        if not raw:
            continue
        text = raw.decode() if isinstance(raw, (bytes, bytearray)) else raw
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ValueError(f"failed to parse config: {exc}") from exc
        if document is None:
            continue
        if not isinstance(document, dict):
            raise ValueError(f"config must be a mapping, got {type(document).__name__}")
        merged = _merge(merged, document)
    return merged


def read_desired_control_plane_replicas_count(operator_client) -> int:
    """Read the control plane replica count from the merged operator config; 0 if unset."""
    spec, _, _ = operator_client.get_static_pod_operator_state()
    config = merge_process_config(spec.observed_config, spec.unsupported_config_overrides)

    path = ".".join(CONTROL_PLANE_REPLICAS_PATH)
    value: Any = config
    for key in CONTROL_PLANE_REPLICAS_PATH:
        if not isinstance(value, dict):
            raise ValueError(
                f"unable to extract {path!r} from the existing config: "
                f"{type(value).__name__} is not a mapping"
            )
        if key not in value:
            return 0
        value = value[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(
            f"unable to extract {path!r} from the existing config: "
            f"{value!r} is of type {type(value).__name__}, expected a number"
        )
    return int(value)


def _split_host_port(hostport: str) -> tuple[str, str]:
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError(f"address {hostport}: missing ']' in address")
        host, rest = hostport[1:end], hostport[end + 1 :]
        if not rest.startswith(":"):
            raise ValueError(f"address {hostport}: missing port in address")
        return host, rest[1:]
    host, sep, port = hostport.rpartition(":")
    if not sep:
        raise ValueError(f"address {hostport}: missing port in address")
    if ":" in host:
        raise ValueError(f"address {hostport}: too many colons in address")
    return host, port


def ip_from_address(address: str) -> str:
    """Return the host part of a URL such as ``https://10.0.0.1:2380``, without brackets."""
    host, _ = _split_host_port(urlsplit(address).netloc)
    return host


def member_to_node_internal_ip(member: Member) -> str:
    """Return the IP address in the member's first peer URL."""
    if not member.peer_urls:
        raise ValueError(
            "unable to extract member's URL address, it has an empty PeerURLs field, "
            f"member name: {member.name}, id: {member.id}"
        )
    return ip_from_address(member.peer_urls[0])


def has_machine_deletion_hook(machine: Machine) -> bool:
    """Return True if the machine carries this operator's PreDrain hook."""
    return any(
        hook.name == MACHINE_DELETION_HOOK_NAME and hook.owner == MACHINE_DELETION_HOOK_OWNER
        for hook in machine.pre_drain_hooks
    )


def filter_machines_with_machine_deletion_hook(machines: Iterable[Machine]) -> list[Machine]:
    return [machine for machine in machines if has_machine_deletion_hook(machine)]


def filter_machines_without_machine_deletion_hook(machines: Iterable[Machine]) -> list[Machine]:
    return [machine for machine in machines if not has_machine_deletion_hook(machine)]


def filter_machines_pending_deletion(machines: Iterable[Machine]) -> list[Machine]:
    return [machine for machine in machines if machine.deletion_timestamp is not None]


def index_machines_by_node_internal_ip(machines: Iterable[Machine]) -> dict[str, Machine]:
    """Map every internal IP of every machine to that machine."""
    return {
        addr.address: machine
        for machine in machines
        for addr in machine.addresses
        if addr.type == NODE_INTERNAL_IP
    }


def current_member_machines_with_deletion_hooks(
    machine_selector: LabelSelector, machine_lister
) -> list[Machine]:
    """Return the selected machines that carry the deletion hook."""
    return filter_machines_with_machine_deletion_hook(machine_lister.list(machine_selector))


def find_machine_by_node_internal_ip(
    node_internal_ip: str, machine_selector: LabelSelector, machine_lister
) -> Optional[Machine]:
    """Return the first selected machine with the given internal IP, or None."""
    for machine in machine_lister.list(machine_selector):
        for addr in machine.addresses:
            if addr.type == NODE_INTERNAL_IP and addr.address == node_internal_ip:
                return machine
    return None


def voting_member_ip_set(client: EtcdClient) -> set[str]:
    """Return the IP addresses of the voting members."""
    return {ip_from_address(member.peer_urls[0]) for member in client.voting_member_list()}