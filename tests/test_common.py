from datetime import datetime

import pytest

from etcdmembership.common import (
    MACHINE_DELETION_HOOK_NAME,
    MACHINE_DELETION_HOOK_OWNER,
    current_member_machines_with_deletion_hooks,
    filter_machines_pending_deletion,
    filter_machines_with_machine_deletion_hook,
    filter_machines_without_machine_deletion_hook,
    find_machine_by_node_internal_ip,
    has_machine_deletion_hook,
    index_machines_by_node_internal_ip,
    ip_from_address,
    member_to_node_internal_ip,
    merge_process_config,
    read_desired_control_plane_replicas_count,
    voting_member_ip_set,
)
from etcdmembership.models import (
    LabelSelector,
    LifecycleHook,
    Machine,
    Member,
    NodeAddress,
    StaticPodOperatorSpec,
    StaticPodOperatorStatus,
)
from etcdmembership.store import ObjectStore

WELL_KNOWN_REPLICAS = """
{
 "controlPlane": {"replicas": 3}
}
"""

REPLICAS_IN_UNSUPPORTED = """
{
 "controlPlane": {"replicas": 7}
}
"""

ROLE_KEY = "machine.openshift.io/cluster-api-machine-role"
SELECTOR = LabelSelector.parse(f"{ROLE_KEY}=master")


class FakeOperatorClient:
    def __init__(self, spec):
        self.spec = spec

    def get_static_pod_operator_state(self):
        return self.spec, StaticPodOperatorStatus(), ""


class FakeVotingClient:
    def __init__(self, members):
        self.members = members

    def voting_member_list(self):
        return [m for m in self.members if not m.is_learner]


def machine_for(name, ip, hook=True, deleting=False, labels=None):
    return Machine(
        name=name,
        labels={ROLE_KEY: "master"} if labels is None else labels,
        phase="Running",
        addresses=[NodeAddress(ip)],
        pre_drain_hooks=[LifecycleHook(MACHINE_DELETION_HOOK_NAME, MACHINE_DELETION_HOOK_OWNER)] if hook else [],
        deletion_timestamp=datetime(2023, 1, 1) if deleting else None,
    )


@pytest.mark.parametrize(
    "spec, expected",
    [
        (StaticPodOperatorSpec(observed_config=WELL_KNOWN_REPLICAS.encode()), 3),
        (
            StaticPodOperatorSpec(
                observed_config=WELL_KNOWN_REPLICAS.encode(),
                unsupported_config_overrides=REPLICAS_IN_UNSUPPORTED.encode(),
            ),
            7,
        ),
    ],
)
def test_read_desired_control_plane_replicas_count(spec, expected):
    assert read_desired_control_plane_replicas_count(FakeOperatorClient(spec)) == expected


def test_replicas_count_unset_is_zero():
    spec = StaticPodOperatorSpec(observed_config=b'{"other": 1}')
    assert read_desired_control_plane_replicas_count(FakeOperatorClient(spec)) == 0


def test_replicas_count_wrong_type_is_an_error():
    spec = StaticPodOperatorSpec(observed_config=b'{"controlPlane": {"replicas": "three"}}')
    with pytest.raises(ValueError):
        read_desired_control_plane_replicas_count(FakeOperatorClient(spec))


def test_merge_process_config_deep_merges():
    merged = merge_process_config(b'{"a": {"b": 1, "c": 2}}', None, "a:\n  c: 3\n")
    assert merged == {"a": {"b": 1, "c": 3}}


def test_member_to_node_internal_ip():
    member = Member(name="etcd-0", peer_urls=["https://10.0.0.1:2380"])
    assert member_to_node_internal_ip(member) == "10.0.0.1"


def test_member_without_peer_urls_is_an_error():
    with pytest.raises(ValueError, match="empty PeerURLs field, member name: etcd-0"):
        member_to_node_internal_ip(Member(name="etcd-0"))


def test_ip_from_ipv6_address():
    assert ip_from_address("https://[fd2e:6f44:5dd8:c956::16]:2380") == "fd2e:6f44:5dd8:c956::16"


def test_ip_from_address_without_port_is_an_error():
    with pytest.raises(ValueError, match="missing port"):
        ip_from_address("https://10.0.0.1")


def test_filters_partition_machines():
    with_hook = machine_for("m-0", "10.0.0.0")
    without_hook = machine_for("m-1", "10.0.0.1", hook=False)
    deleting = machine_for("m-2", "10.0.0.2", deleting=True)
    machines = [with_hook, without_hook, deleting]
    assert filter_machines_with_machine_deletion_hook(machines) == [with_hook, deleting]
    assert filter_machines_without_machine_deletion_hook(machines) == [without_hook]
    assert filter_machines_pending_deletion(machines) == [deleting]


def test_hook_requires_matching_owner():
    machine = machine_for("m-0", "10.0.0.0", hook=False)
    machine.pre_drain_hooks = [LifecycleHook(MACHINE_DELETION_HOOK_NAME, "someone-else")]
    assert has_machine_deletion_hook(machine) is False


def test_index_machines_keeps_all_internal_ips():
    machine = machine_for("m-0", "10.0.0.0")
    machine.addresses.append(NodeAddress("fd00::1"))
    machine.addresses.append(NodeAddress("m-0.example.com", type="Hostname"))
    index = index_machines_by_node_internal_ip([machine])
    assert index == {"10.0.0.0": machine, "fd00::1": machine}


def test_current_member_machines_with_deletion_hooks_uses_selector():
    hooked = machine_for("m-0", "10.0.0.0")
    unhooked = machine_for("m-1", "10.0.0.1", hook=False)
    worker = machine_for("w-0", "10.0.0.9", labels={})
    store = ObjectStore([hooked, unhooked, worker])
    assert current_member_machines_with_deletion_hooks(SELECTOR, store) == [hooked]


def test_find_machine_by_node_internal_ip():
    first = machine_for("m-0", "10.0.0.0")
    second = machine_for("m-1", "10.0.0.1")
    store = ObjectStore([first, second])
    assert find_machine_by_node_internal_ip("10.0.0.1", SELECTOR, store) is second
    assert find_machine_by_node_internal_ip("10.0.0.5", SELECTOR, store) is None


def test_voting_member_ip_set_skips_learners():
    client = FakeVotingClient(
        [
            Member(name="etcd-0", peer_urls=["https://10.0.0.1:2380"]),
            Member(name="etcd-1", peer_urls=["https://10.0.0.2:2380"], is_learner=True),
            Member(name="etcd-2", peer_urls=["https://[fd00::3]:2380"]),
        ]
    )
    assert voting_member_ip_set(client) == {"10.0.0.1", "fd00::3"}