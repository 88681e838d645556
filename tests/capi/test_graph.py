import pytest

from ocne.capi import graph as capi
from ocne.errors import NotFoundError, OcneError
from ocne.k8s.resources import ResourceApplier


def test_graph_links_owners_to_machine_templates(dynamic, cluster_objects):
    dynamic.load(*cluster_objects(machine_deployments=2))

    g = capi.get_cluster_graph(ResourceApplier(dynamic), "ocne", "demo")

    assert g.cluster.name == "demo"
    assert g.node(g.control_plane).obj["kind"] == "KubeadmControlPlane"
    assert g.node(g.infrastructure_cluster).obj["kind"] == "OLVMCluster"
    assert [g.node(k).name for k in g.machine_deployments] == ["demo-md-0", "demo-md-1"]
    assert sorted(n.name for n in g.machine_templates()) == ["demo-control-plane", "demo-md-0", "demo-md-1"]


def test_walk_visits_control_plane_first(dynamic, cluster_objects):
    dynamic.load(*cluster_objects(machine_deployments=2))
    g = capi.get_cluster_graph(ResourceApplier(dynamic), "ocne", "demo")
    visited = []

    g.walk_machine_templates(lambda owner, mt, arg: visited.append((owner.role, mt.name, arg)), "x")

    assert visited == [
        (capi.ROLE_CONTROL_PLANE, "demo-control-plane", "x"),
        (capi.ROLE_MACHINE_DEPLOYMENT, "demo-md-0", "x"),
        (capi.ROLE_MACHINE_DEPLOYMENT, "demo-md-1", "x"),
    ]


def test_machine_deployments_of_other_clusters_are_ignored(dynamic, cluster_objects):
    dynamic.load(*cluster_objects())
    dynamic.load(*[o for o in cluster_objects(name="other") if o["kind"] == "MachineDeployment" or o["metadata"]["name"] == "other-md-0"])

    g = capi.get_cluster_graph(ResourceApplier(dynamic), "ocne", "demo")

    assert [g.node(k).name for k in g.machine_deployments] == ["demo-md-0"]


def test_missing_cluster_is_not_found(dynamic):
    with pytest.raises(NotFoundError):
        capi.get_cluster_graph(ResourceApplier(dynamic), "ocne", "demo")


def test_unsupported_control_plane_kind(dynamic, cluster_objects):
    objs = cluster_objects()
    objs[0]["spec"]["controlPlaneRef"]["kind"] = "TalosControlPlane"
    dynamic.load(*objs)

    with pytest.raises(OcneError, match="not supported"):
        capi.get_cluster_graph(ResourceApplier(dynamic), "ocne", "demo")


def test_add_rejects_cycles():
    g = capi.ClusterGraph()
    a = {"apiVersion": "v1", "kind": "A", "metadata": {"name": "a"}}
    b = {"apiVersion": "v1", "kind": "B", "metadata": {"name": "b"}}
    ka = g.add(a, "x")
    kb = g.add(b, "y", ka)

    with pytest.raises(OcneError, match="cycle"):
        g.add(a, "x", kb)
