"""Cluster objects, label selectors and errors used by the membership logic."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping, Optional, Protocol, Sequence, Union

NODE_INTERNAL_IP = "InternalIP"

RawConfig = Union[bytes, str, None]

_KEY_RE = re.compile(r"^[A-Za-z0-9]([-A-Za-z0-9_./]*[A-Za-z0-9])?$")
_VALUE_RE = re.compile(r"^([A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?)?$")


class NotFoundError(LookupError):
    """Raised when a named object is not present."""

    def __init__(self, name: str, namespace: str = "") -> None:
        self.name = name
        self.namespace = namespace
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f'"{where}" not found')


class AggregateError(Exception):
    """Several errors collected while processing independent items."""

    def __init__(self, errors: Iterable[BaseException]) -> None:
        self.errors = tuple(errors)
        if len(self.errors) == 1:
            message = str(self.errors[0])
        else:
            message = "[" + ", ".join(str(err) for err in self.errors) + "]"
        super().__init__(message)

    @classmethod
    def from_errors(cls, errors: Iterable[Optional[BaseException]]) -> Optional["AggregateError"]:
        """Wrap the given errors, or return None when there are none."""
        collected = [err for err in errors if err is not None]
        if not collected:
            return None
        return cls(collected)


@dataclass(frozen=True)
class LabelSelector:
    """A conjunction of label requirements such as ``role=master,!tainted``."""

    requirements: tuple[tuple[str, str, str], ...] = ()

    @classmethod
    def parse(cls, text: str) -> "LabelSelector":
        """Parse a selector; an empty string selects everything."""
        if not text.strip():
            return cls()
        requirements = []
        for term in (part.strip() for part in text.split(",")):
            if not term:
                raise ValueError(f"invalid label selector {text!r}: empty requirement")
            if term.startswith("!"):
                key, op, value = term[1:], "!exists", ""
            elif "!=" in term:
                key, value = term.split("!=", 1)
                op = "!="
            elif "==" in term:
                key, value = term.split("==", 1)
                op = "="
            elif "=" in term:
                key, value = term.split("=", 1)
                op = "="
            else:
                key, op, value = term, "exists", ""
            key, value = key.strip(), value.strip()
            if not _KEY_RE.match(key):
                raise ValueError(f"invalid label key {key!r} in selector {text!r}")
            if not _VALUE_RE.match(value):
                raise ValueError(f"invalid label value {value!r} in selector {text!r}")
            requirements.append((key, op, value))
        return cls(tuple(requirements))

    def matches(self, labels: Optional[Mapping[str, str]]) -> bool:
        """Return True if the labels satisfy every requirement."""
        labels = labels or {}
        for key, op, value in self.requirements:
            if op == "exists" and key not in labels:
                return False
            if op == "!exists" and key in labels:
                return False
            if op == "=" and labels.get(key) != value:
                return False
            if op == "!=" and key in labels and labels[key] == value:
                return False
        return True


@dataclass
class Member:
    name: str = ""
    id: int = 0
    peer_urls: list[str] = field(default_factory=list)
    client_urls: list[str] = field(default_factory=list)
    is_learner: bool = False


@dataclass
class MemberHealth:
    member: Member
    healthy: bool = False
    took: str = ""
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class LifecycleHook:
    name: str
    owner: str


@dataclass(frozen=True)
class NodeAddress:
    address: str
    type: str = NODE_INTERNAL_IP


@dataclass
class Machine:
    name: str
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    phase: Optional[str] = None
    addresses: list[NodeAddress] = field(default_factory=list)
    pre_drain_hooks: list[LifecycleHook] = field(default_factory=list)
    deletion_timestamp: Optional[datetime] = None


@dataclass
class Node:
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    addresses: list[NodeAddress] = field(default_factory=list)
    deletion_timestamp: Optional[datetime] = None


@dataclass
class ContainerStatus:
    name: str
    ready: bool = False
    running: bool = False


@dataclass
class Pod:
    name: str
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    container_statuses: list[ContainerStatus] = field(default_factory=list)


@dataclass
class NodeStatus:
    node_name: str
    current_revision: int = 0


@dataclass
class StaticPodOperatorSpec:
    observed_config: RawConfig = None
    unsupported_config_overrides: RawConfig = None
    management_state: str = ""


@dataclass
class StaticPodOperatorStatus:
    latest_available_revision: int = 0
    node_statuses: list[NodeStatus] = field(default_factory=list)


@dataclass
class ConfigMap:
    name: str
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    data: dict[str, str] = field(default_factory=dict)


@dataclass
class Namespace:
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class Infrastructure:
    name: str
    control_plane_topology: str = ""


@dataclass
class Network:
    name: str
    service_network: list[str] = field(default_factory=list)


class EtcdClient(Protocol):
    """Operations on the etcd cluster membership."""

    def member_list(self) -> Sequence[Member]:
        """Return every member, voting or learner."""

    def voting_member_list(self) -> Sequence[Member]:
        """Return the voting members only."""

    def member_health(self) -> Sequence[MemberHealth]:
        """Return the health of every member."""

    def unhealthy_members(self) -> Sequence[Member]:
        """Return the members that failed their health check."""

    def member_add_as_learner(self, peer_url: str) -> None:
        """Add a learner member with the given peer URL."""

    def member_promote(self, member: Member) -> None:
        """Promote a learner member to a voting member."""