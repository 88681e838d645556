import pytest

from ocne.config.models import ClusterConfig
from ocne.errors import ConfigInvalidError
from ocne.olvm.validate import apply_node_defaults, validate_cluster_config


def test_zero_nodes_become_one():
    cc = apply_node_defaults(ClusterConfig())
    assert (cc.control_plane_nodes, cc.worker_nodes) == (1, 1)


def test_valid_config_passes(olvm_config):
    cc = olvm_config()
    assert validate_cluster_config(cc) is cc


def test_even_control_plane_is_rejected(olvm_config):
    with pytest.raises(ConfigInvalidError, match="odd"):
        validate_cluster_config(olvm_config(controlPlaneNodes=2))


@pytest.mark.parametrize(
    "mutate, missing",
    [
        (lambda o: o.update(olvmDatacenterName=""), "providers.olvm.olvmDatacenterName"),
        (lambda o: o["olvmOvirtAPIServer"].update(serverURL=""), "providers.olvm.olvmOvirtAPIServer.serverURL"),
        (lambda o: o["workerMachine"].update(vmTemplateName=""), "providers.olvm.workerMachine.vmTemplateName"),
        (
            lambda o: o["controlPlaneMachine"]["olvmNetwork"].update(networkName=""),
            "providers.olvm.controlPlaneMachine.olvmNetwork.networkName",
        ),
        (
            lambda o: o["workerMachine"]["virtualMachine"]["network"]["ipv4"].update(subnet=""),
            "providers.olvm.workerMachine.virtualMachine.network.ipv4.subnet",
        ),
    ],
)
def test_required_fields(olvm_config, mutate, missing):
    data = olvm_config().model_dump(by_alias=True)
    mutate(data["providers"]["olvm"])

    with pytest.raises(ConfigInvalidError, match=f"The configuration parameter {missing} is required"):
        validate_cluster_config(ClusterConfig.model_validate(data))


def test_both_ca_forms_rejected(olvm_config):
    cc = olvm_config()
    cc.olvm.olvm_api_server.server_ca_path = "/etc/pki/ovirt.pem"

    with pytest.raises(ConfigInvalidError, match="cannot specify both"):
        validate_cluster_config(cc)
