# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/config/models.py

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

INTERNAL_CATALOG = "Oracle Cloud Native Environment Application Catalog"
INTERNAL_CATALOG_URI = "https://oracle-cne.github.io/catalog"

DEFAULT_KUBE_VERSION = "1.31"


class _Model(BaseModel):
    # YAML keys are camelCase; python attributes stay snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Proxy(_Model):
    https_proxy: str = ""
    http_proxy: str = ""
    no_proxy: str = ""

    def is_empty(self) -> bool:
        return not (self.https_proxy or self.http_proxy or self.no_proxy)


class NamespacedName(_Model):
    name: str = ""
    namespace: str = ""


class Catalog(_Model):
    name: str
    uri: str
    protocol: str = "helm"
    namespace: str = "ocne-system"


class Application(_Model):
    name: str
    namespace: str = "default"
    release: str = ""
    version: str = ""
    catalog: str = INTERNAL_CATALOG
    config: Optional[Dict[str, Any]] = None
    config_from: str = ""

    def release_name(self) -> str:
        return self.release or self.name


class SshTunnelConfig(_Model):
    """Reach a remote libvirt host's API server through `ssh -L`."""

    host: str
    user: Optional[str] = None
    local_port: int = 6443
    remote_port: int = 6443


class EphemeralClusterConfig(_Model):
    name: str = "ocne-ephemeral"
    preserve: bool = False
    session: str = "qemu:///session"
    tunnel: Optional[SshTunnelConfig] = None


class OlvmNetwork(_Model):
    network_name: str = ""
    vnic_name: str = "nic-1"
    vnic_profile_name: str = ""


class OlvmIP(_Model):
    subnet: str = ""
    ip_addresses: str = ""

    def addresses(self) -> List[str]:
        return [a.strip() for a in self.ip_addresses.split(",") if a.strip()]


class OlvmMachineCpuTopology(_Model):
    cores: int = 2
    sockets: int = 2
    threads: int = 1


class OlvmMachineCpu(_Model):
    architecture: str = "x86_64"
    topology: OlvmMachineCpuTopology = Field(default_factory=OlvmMachineCpuTopology)


class OlvmVirtualMachineNetwork(_Model):
    gateway: str = ""
    interface: str = "enp1s0"
    interface_type: str = "virtio"
    ipv4: OlvmIP = Field(default_factory=OlvmIP)
    ipv6: OlvmIP = Field(default_factory=OlvmIP)


class OlvmVirtualMachine(_Model):
    cpu: OlvmMachineCpu = Field(default_factory=OlvmMachineCpu)
    memory: str = ""
    network: OlvmVirtualMachineNetwork = Field(default_factory=OlvmVirtualMachineNetwork)


class OlvmMachine(_Model):
    olvm_network: OlvmNetwork = Field(default_factory=OlvmNetwork)
    olvm_ovirt_cluster_name: str = ""
    virtual_machine: OlvmVirtualMachine = Field(default_factory=OlvmVirtualMachine)
    vm_template_name: str = ""


class OlvmAPIServer(_Model):
    ca_config_map: NamespacedName = Field(default_factory=NamespacedName)
    credentials_secret: NamespacedName = Field(default_factory=NamespacedName)
    insecure_skip_tls_verify: bool = Field(False, alias="insecureSkipTLSVerify")
    server_ca: str = Field("", alias="serverCA")
    server_ca_path: str = Field("", alias="serverCAPath")
    server_url: str = Field("", alias="serverURL")


class OlvmOck(_Model):
    disk_name: str = ""
    disk_size: str = ""
    storage_domain_name: str = ""


class OlvmLocalAPIEndpoint(_Model):
    bind_port: int = 0
    advertise_address: str = ""


class OvirtCsiDriver(_Model):
    install: bool = False
    namespace: str = "ovirt-csi"
    ca_provided: Optional[bool] = None
    config_map_name: str = Field("ovirt-csi-ca", alias="caConfigmapName")
    secret_name: str = Field("ovirt-csi-creds", alias="credsSecretName")
    controller_plugin_name: str = ""
    node_plugin_name: str = ""
    csi_driver_name: str = ""


class OlvmProvider(_Model):
    namespace: str = "ocne"
    datacenter_name: str = Field("", alias="olvmDatacenterName")
    olvm_api_server: OlvmAPIServer = Field(default_factory=OlvmAPIServer, alias="olvmOvirtAPIServer")
    olvm_ock: OlvmOck = Field(default_factory=OlvmOck, alias="olvmOCK")
    local_api_endpoint: OlvmLocalAPIEndpoint = Field(default_factory=OlvmLocalAPIEndpoint, alias="localAPIEndpoint")
    control_plane_machine: OlvmMachine = Field(default_factory=OlvmMachine)
    worker_machine: OlvmMachine = Field(default_factory=OlvmMachine)
    csi_driver: OvirtCsiDriver = Field(default_factory=OvirtCsiDriver, alias="ovirtCsiDriver")
    proxy: Proxy = Field(default_factory=Proxy)
    self_managed: bool = False


class Providers(_Model):
    olvm: OlvmProvider = Field(default_factory=OlvmProvider)


class Config(_Model):
    """
    Tool-wide settings. Usually read from ~/.ocne/defaults.yaml and
    layered underneath every cluster configuration.
    """

    kube_version: str = Field(DEFAULT_KUBE_VERSION, alias="kubernetesVersion")
    kubeconfig: str = ""
    os_tag: str = ""
    os_registry: str = "container-registry.oracle.com/olcne/ock"
    registry: str = "container-registry.oracle.com"
    proxy: Proxy = Field(default_factory=Proxy)
    pod_subnet: str = "10.244.0.0/16"
    service_subnet: str = "10.96.0.0/12"
    kube_api_server_bind_port: int = 6443
    kube_api_server_bind_port_alt: int = 6444
    kube_proxy_mode: Literal["iptables", "ipvs"] = "iptables"
    cni: Literal["flannel", "none"] = "flannel"
    headless: bool = False
    catalog: bool = True
    community_catalog: bool = False
    quiet: bool = False
    ssh_public_key: str = ""
    ssh_public_key_path: str = ""
    password: str = ""
    ephemeral_config: EphemeralClusterConfig = Field(default_factory=EphemeralClusterConfig, alias="ephemeralCluster")
    providers: Providers = Field(default_factory=Providers)

    def boot_image(self) -> str:
        return f"{self.os_registry}:{self.os_tag or self.kube_version}"


class ClusterConfig(Config):
    name: str = "ocne"
    provider: str = "olvm"
    worker_nodes: int = 0
    control_plane_nodes: int = 0
    virtual_ip: str = ""
    load_balancer: str = ""
    cluster_definition: str = ""
    cluster_definition_inline: str = ""
    working_directory: str = Field("", alias="directory")
    catalogs: List[Catalog] = Field(default_factory=list)
    applications: List[Application] = Field(default_factory=list)
    cipher_suites: str = ""
    # merged into every node's boot configuration
    extra_ignition: str = ""
    extra_ignition_inline: str = ""

    @property
    def olvm(self) -> OlvmProvider:
        return self.providers.olvm
