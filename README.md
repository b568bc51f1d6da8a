# etcdmembership

Decision logic for growing and protecting an etcd cluster that runs on a
set of control-plane machines:

- working out which **bootstrap scaling strategy** applies (highly
  available, delayed HA, or unsafe for single-node and explicitly
  overridden clusters);
- telling whether **bootstrap has finished**, and whether it is **safe to
  scale** or to roll out a new revision without losing quorum;
- choosing the node that should join next as a **learner member**, and the
  learners that may be **promoted** to voting members, taking machine
  deletion hooks and machines pending deletion into account.

Cluster objects are plain dataclasses, and `ObjectStore` serves them to the
logic by name and by label selector, so the decisions can be driven from
any source of cluster state.

## Modules

| Module | What it holds |
| --- | --- |
| `etcdmembership.models` | Dataclasses `Member`, `MemberHealth`, `Machine`, `LifecycleHook`, `NodeAddress`, `Node`, `Pod`, `ContainerStatus`, `ConfigMap`, `Namespace`, `Infrastructure`, `Network`, `NodeStatus`, `StaticPodOperatorSpec`, `StaticPodOperatorStatus`; `LabelSelector`; the `EtcdClient` protocol; the `NotFoundError` and `AggregateError` exceptions. |
| `etcdmembership.store` | `ObjectStore`: `add`, `get(name, namespace="")` (raises `NotFoundError`) and `list(selector=None)` in insertion order. |
| `etcdmembership.unsupported_override` | `is_unsupported_unsafe_etcd` reads the `useUnsupportedUnsafeNonHANonProductionUnstableEtcd` key from the unsupported config overrides (YAML or JSON); `parse_bool` accepts `1 t T true TRUE True` and `0 f F false FALSE False` and raises `ValueError` on anything else. |
| `etcdmembership.topology` | `TopologyMode`, `get_control_plane_topology`, `is_single_node_topology`. |
| `etcdmembership.machine_api` | `MachineAPI.is_functional`: true once the informer reports synced and a selected machine is in the `Running` phase. |
| `etcdmembership.common` | `merge_process_config`, `read_desired_control_plane_replicas_count`, `ip_from_address`, `member_to_node_internal_ip`, the deletion-hook filters, `index_machines_by_node_internal_ip`, `find_machine_by_node_internal_ip`, `voting_member_ip_set`. |
| `etcdmembership.bootstrap` | `BootstrapScalingStrategy`, `get_bootstrap_scaling_strategy`, `is_bootstrap_complete`, `check_safe_to_scale_cluster`, `UnsafeToScaleError`. |
| `etcdmembership.quorum_check` | `QuorumCheck`, `AlwaysSafeQuorumChecker`, `new_quorum_checker`. |
| `etcdmembership.member_controller` | `ClusterMemberController` and `is_url_mapped_to_member`. |

## What the logic expects from the caller

- **Listers** are anything with `get(name, namespace="")` and
  `list(selector)`; `ObjectStore` is one. The names looked up are fixed:
  namespace `openshift-etcd`, config map `kube-system/bootstrap`,
  infrastructure `cluster`, network `cluster`, and pods named
  `etcd-<node name>` in `openshift-etcd`.
- **The operator client** has `get_static_pod_operator_state()` returning a
  triple whose first two items are a `StaticPodOperatorSpec` and a
  `StaticPodOperatorStatus`.
- **The etcd client** implements the `EtcdClient` protocol: `member_list`,
  `voting_member_list`, `member_health`, `unhealthy_members`,
  `member_add_as_learner` and `member_promote`.
- **The machine API checker** has `is_functional()`; `MachineAPI` is one.

## Examples

Label selectors take `key=value`, `key==value`, `key!=value`, bare `key`
and `!key` terms joined by commas:

```python
from etcdmembership.models import LabelSelector

selector = LabelSelector.parse("machine.openshift.io/cluster-api-machine-role=master")
selector.matches({"machine.openshift.io/cluster-api-machine-role": "master"})  # True
selector.matches({})                                                          # False
```

Deciding the scaling strategy from objects in a store:

```python
from etcdmembership.bootstrap import BootstrapScalingStrategy, get_bootstrap_scaling_strategy
from etcdmembership.models import (
    Infrastructure, Namespace, StaticPodOperatorSpec, StaticPodOperatorStatus,
)
from etcdmembership.store import ObjectStore


class OperatorClient:
    def get_static_pod_operator_state(self):
        return StaticPodOperatorSpec(), StaticPodOperatorStatus(), ""


namespaces = ObjectStore([Namespace("openshift-etcd")])
infra = ObjectStore([Infrastructure("cluster", control_plane_topology="HighlyAvailable")])

get_bootstrap_scaling_strategy(OperatorClient(), namespaces, infra)
# BootstrapScalingStrategy.HA
```

The strategy is `UNSAFE` when the unsafe override is true or the topology is
`SingleReplica`, `DELAYED_HA` when the namespace carries the
`openshift.io/delayed-ha-bootstrap` annotation, and `HA` otherwise.

Checking whether a revision rollout is safe:

```python
from etcdmembership.quorum_check import new_quorum_checker

checker = new_quorum_checker(
    configmap_lister, namespace_lister, infra_lister, operator_client, etcd_client
)
checker.is_safe_to_update_revision()  # True, or raises UnsafeToScaleError with the reason
```

While bootstrap is incomplete this is always safe. Afterwards, unless the
strategy is `UNSAFE`, at least three nodes must be reported and the member
health must leave the cluster able to lose one member without losing quorum.

Running one reconcile pass of the member controller:

```python
from etcdmembership.member_controller import ClusterMemberController

controller = ClusterMemberController(
    etcd_client,
    pod_lister,
    network_lister,
    machine_api_checker,
    machine_lister,
    machine_selector,
    node_lister,
    node_selector,
)
controller.reconcile_members()
```

`reconcile_members` raises `RuntimeError` while any member is unhealthy.
Otherwise it adds at most one learner and then tries to promote every
eligible learner. A node is added when its etcd container is running but not
yet ready; when the machine API is functional, its machine must also carry
the `EtcdQuorumOperator` PreDrain hook and not be pending deletion. A
learner is promoted when the machine API is not functional, or when its
machine carries the hook and is not pending deletion; a learner not yet in
sync with the leader is skipped quietly. Node addresses are chosen in the IP
family of the cluster's first service network, so IPv6 peers come out as
`https://[fd2e:6f44:5dd8:c956::16]:2380`. Failures for individual nodes or
members are collected and raised together as an `AggregateError`.

## What it does not do

The package holds decisions only. It does not connect to an etcd cluster or
to a cluster API server, watch objects for changes, run reconcile passes on a
schedule, record events or report operator conditions, and it has no command
line. The caller supplies the etcd client, the operator client and the
listers, and calls `sync` or `reconcile_members` when it chooses.

## Requirements

Python 3.10 or later and PyYAML.