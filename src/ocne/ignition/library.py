# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/ignition/library.py
"""
Building blocks for per-role node ignition.

initialize_cluster() configures the first control plane node,
join_cluster() every other node. proxy() and ocne_user() produce documents
that are merged on top.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

from jinja2 import Environment, StrictUndefined

from ocne.config.models import Proxy
from ocne.errors import ConfigInvalidError
from .document import Dropin, File, Group, Ignition, Unit, User, merge
from .kubeadm import ROLE_CONTROL_PLANE, ClusterInit, ClusterJoin, kubeadm_init_yaml, kubeadm_join_yaml

log = logging.getLogger("ocne")

_env = Environment(undefined=StrictUndefined, autoescape=False, keep_trailing_newline=True)


def render(template: str, **context) -> str:
    return _env.from_string(template).render(**context)


KUBEADM_FILE_PATH = "/etc/kubernetes/kubeadm.conf"
CA_CRT_FILE_PATH = "/etc/kubernetes/pki/ca.crt"
CA_KEY_FILE_PATH = "/etc/kubernetes/pki/ca.key"

ACTION_INIT = "init"
ACTION_JOIN = "join"

KUBELET_SERVICE = "kubelet.service"
CRIO_SERVICE = "crio.service"
KEEPALIVED_SERVICE = "keepalived.service"
KEEPALIVED_REFRESH_SERVICE = "keepalived-refresh.service"
KEEPALIVED_REFRESH_PATH = "keepalived-refresh.path"
NGINX_SERVICE = "ocne-nginx.service"
NGINX_REFRESH_SERVICE = "ocne-nginx-refresh.service"
NGINX_REFRESH_PATH = "ocne-nginx-refresh.path"
OCNE_SERVICE = "ocne.service"
OCNE_UPDATE_SERVICE = "ocne-update.service"
RPM_OSTREED_SERVICE = "rpm-ostreed.service"

OCNE_UPDATE_CONFIG_PATH = "/etc/ocne/update.yaml"
OCNE_SH_PATH = "/etc/ocne/ocne.sh"
CONTAINER_REGISTRY_PATH = "/etc/containers/registries.conf"

KEEPALIVED_USER = "keepalived_script"
KEEPALIVED_CONFIG_PATH = "/etc/keepalived/keepalived.conf"
KEEPALIVED_CHECK_SCRIPT_PATH = "/etc/keepalived/check_apiserver.sh"
KEEPALIVED_STATE_SCRIPT_PATH = "/etc/keepalived/keepalived_state.sh"
KEEPALIVED_LOG_PATH = "/etc/keepalived/log"

NGINX_USER = "nginx_script"
NGINX_CONFIG_PATH = "/etc/ocne/nginx/nginx.conf"
NGINX_PULL_PATH = "/etc/ocne/nginx/pull_ocne_nginx"
NGINX_START_PATH = "/etc/ocne/nginx/start_ocne_nginx"
NGINX_IMAGE_PATH = "/etc/ocne/nginx/image"
NGINX_IMAGE = "container-registry.oracle.com/olcne/nginx:1.17.7-1"

DEFAULT_OSTREE_TRANSPORT = "ostree-unverified-registry"

# systemd unit parsing in ignition needs the trailing newline
OCNE_BOOTSTRAP_DROPIN = """[Service]
Environment=ACTION={{ action }}
Environment=NET_INTERFACE={{ net_interface }}
"""

OCNE_UPDATE_YAML = """registry: {{ registry }}
tag: {{ tag }}
transport: {{ transport }}
"""

OCNE_SH = """#! /bin/bash
set -x
set -e

if [[ -f "/etc/ocne/reset-kubeadm" ]]; then
	echo Performing kubeadm reset
	kubeadm reset -f && rm /etc/ocne/reset-kubeadm
fi

NODE_IP=$(ip addr show $NET_INTERFACE | grep 'inet\\b' | awk '{print $2}' | cut -d/ -f1 | head -n 1)

if [[ -f "/etc/kubernetes/kubelet.conf" ]]; then
	echo Kubernetes is already initialized
	exit 0
fi

K8S=/etc/kubernetes
PKI=$K8S/pki

systemctl enable --now crio.service
systemctl enable kubelet.service

sed -i -e 's/NODE_IP/'"$NODE_IP"'/g' ${K8S}/kubeadm.conf

if [[ "$ACTION" == "init" ]]; then
	echo Initalizing new Kubernetes cluster
	mkdir -p $PKI
	kubeadm init --config ${K8S}/kubeadm.conf --upload-certs
elif [[ "$ACTION" == "join" ]]; then
	echo Joining existing Kubernetes cluster
	kubeadm join --config ${K8S}/kubeadm.conf
else
	echo "Action '$ACTION' is invalid.  Valid values are 'init' and 'join'"
	exit 1
fi

if [ -f "/etc/kubernetes/admin.conf" ]; then
	cp /etc/kubernetes/admin.conf /etc/keepalived/kubeconfig
	chown keepalived_script:keepalived_script /etc/keepalived/kubeconfig
	chmod 400 /etc/keepalived/kubeconfig
fi
"""

CONTAINER_REGISTRY_CONF = """unqualified-search-registries = ["{{ registry }}"]
"""

PROXY_DROPIN = """[Service]
{%- if https_proxy %}
Environment=HTTPS_PROXY={{ https_proxy }}
Environment=https_proxy={{ https_proxy }}
{%- endif %}
{%- if http_proxy %}
Environment=HTTP_PROXY={{ http_proxy }}
Environment=http_proxy={{ http_proxy }}
{%- endif %}
{%- if no_proxy %}
Environment=no_proxy={{ no_proxy }}
{%- endif %}
"""

KEEPALIVED_CONFIG = """
global_defs {
  router_id LVS_DEVEL
  enable_script_security
}
vrrp_script check_apiserver {
  script "/etc/keepalived/check_apiserver.sh"
  interval 5
  weight 0
  fall 10
  rise 2
}
vrrp_instance VI_1 {
  state BACKUP
  interface {{ iface }}
  virtual_router_id 51
  priority {{ priority }}
  unicast_peer {
{{ peers }}
  }
  virtual_ipaddress {
    {{ virtual_ip }}
  }
  track_script {
    check_apiserver
  }
  notify /etc/keepalived/keepalived_state.sh
}
"""

KEEPALIVED_CHECK_SCRIPT = """#!/bin/bash
if ! (ip addr | grep -q '{{ virtual_ip }}/'); then
  if grep -zo 'unicast_peer[[:space:]]*{[[:space:]]*}' {{ keepalived_config }}; then
    if arping -f -I $(ip route get {{ virtual_ip }} | cut -d' ' -f3 | head -1) -c 3 {{ virtual_ip }}; then
      if curl -k https://{{ virtual_ip }}:{{ bind_port }}; then
        exit 1
      fi
    fi
  fi
fi

PORTS=$(netstat -nltp)
echo $PORTS | grep -q {{ bind_port }}
if [ $? -ne 0 ]; then
  echo $(date): keepalived failed to find nginx bound to port >> /etc/keepalived/log
  exit 1
fi
"""

KEEPALIVED_STATE_SCRIPT = """#!/bin/bash
echo $(date): keepalived state: "$@" >> /etc/keepalived/log
"""

NGINX_CONFIG = """
load_module /usr/lib64/nginx/modules/ngx_stream_module.so;
events {
  worker_connections 2048;
}
stream {
  upstream backend1 {
    server localhost:{{ alt_port }} fail_timeout=10s max_fails=1;
    least_conn;
  }
  server {
    listen {{ bind_port }};
    listen [::]:{{ bind_port }};
    proxy_pass backend1;
    proxy_connect_timeout 500m;
  }
}
"""

NGINX_SERVICE_UNIT = """
[Unit]
Description=Nginx load balancer for Kubernetes control plane nodes
Wants=network.target
After=network.target
Before=keepalived.service
StartLimitIntervalSec=0

[Service]
ExecStartPre=/etc/ocne/nginx/pull_ocne_nginx
ExecStart=/etc/ocne/nginx/start_ocne_nginx
ExecStop=podman stop ocne-nginx
ExecReload=podman exec ocne-nginx nginx -s reload
Restart=always
RestartSec=1

[Install]
WantedBy=multi-user.target
WantedBy=keepalived.service
"""

NGINX_PULL = """#!/bin/bash

IMAGE={{ image }}

if [ -f "/etc/ocne/nginx/image" ]; then
	. "/etc/ocne/nginx/image"
fi

podman image exists ${IMAGE} || crictl pull ${IMAGE}
exit 0
"""

NGINX_START = """#!/bin/bash

IMAGE={{ image }}

if [ -f "/etc/ocne/nginx/image" ]; then
	. "/etc/ocne/nginx/image"
fi

exec podman run --name ocne-nginx --replace --rm --network=host --volume=/etc/ocne/nginx:/etc/nginx ${IMAGE}
"""

REFRESH_PATH_UNIT = """
[Unit]
Description=Configuration checker for {{ what }}

[Path]
PathChanged={{ watched }}
Unit={{ unit }}

[Install]
WantedBy=multi-user.target
"""

REFRESH_SERVICE_UNIT = """
[Unit]
Description=Reload {{ what }} on configuration changes

[Service]
ExecStart=systemctl reload {{ unit }}
Type=oneshot
"""


def parse_ostree_reference(ref: str) -> Tuple[str, str, str]:
    """
    Split an ostree image reference into (transport, registry, tag).

        ostree-unverified-registry:host/ock-ostree:1.30 -> (transport, host/ock-ostree, 1.30)
        host/ock-ostree                                 -> (ostree-unverified-registry, host/ock-ostree, "")
    """
    transport = DEFAULT_OSTREE_TRANSPORT
    rest = ref
    head, sep, tail = ref.partition(":")
    if sep and head.startswith("ostree"):
        transport, rest = head, tail

    tag = ""
    last = rest.rsplit("/", 1)[-1]
    if ":" in last:
        rest, _, tag = rest.rpartition(":")
    return transport, rest, tag


def proxy_dropin(proxy: Proxy) -> str:
    return render(
        PROXY_DROPIN,
        https_proxy=proxy.https_proxy,
        http_proxy=proxy.http_proxy,
        no_proxy=proxy.no_proxy,
    )


def container_configuration(registry: str) -> Ignition:
    ign = Ignition()
    # crio and kubelet fail until kubeadm has run; enabling them is enough
    ign.add_unit(Unit(CRIO_SERVICE, enabled=True))
    ign.add_unit(Unit(KUBELET_SERVICE, enabled=True))
    ign.add_file(File(CONTAINER_REGISTRY_PATH, render(CONTAINER_REGISTRY_CONF, registry=registry), mode=0o644))
    return ign


def update_service_file(os_registry: str, os_tag: str) -> File:
    transport, registry, tag = parse_ostree_reference(os_registry)
    if tag:
        raise ConfigInvalidError("osRegistry field cannot have a tag")
    return File(
        OCNE_UPDATE_CONFIG_PATH,
        render(OCNE_UPDATE_YAML, registry=registry, tag=os_tag, transport=transport),
        mode=0o400,
    )


def cluster_common(os_registry: str, os_tag: str, image_registry: str, net_interface: str, action: str) -> Ignition:
    ign = Ignition()
    bootstrap = render(OCNE_BOOTSTRAP_DROPIN, action=action, net_interface=net_interface)

    ign.add_file(update_service_file(os_registry, os_tag))
    ign.add_file(File(OCNE_SH_PATH, OCNE_SH, mode=0o555))
    ign.add_unit(Unit(OCNE_UPDATE_SERVICE, enabled=True))
    ign.add_unit(Unit(OCNE_SERVICE, enabled=True, dropins=[Dropin("bootstrap.conf", bootstrap)]))
    return merge(ign, container_configuration(image_registry))


def initialize_cluster(ci: ClusterInit) -> Ignition:
    ign = cluster_common(ci.os_registry, ci.os_tag, ci.image_registry, ci.net_interface, ACTION_INIT)

    ign.add_file(File(KUBEADM_FILE_PATH, kubeadm_init_yaml(ci), mode=0o600))
    ign.add_file(File(CA_CRT_FILE_PATH, ci.kube_pki_cert, mode=0o600))
    ign.add_file(File(CA_KEY_FILE_PATH, ci.kube_pki_key, mode=0o600))

    if ci.internal_lb:
        ign = ignition_for_virtual_ip(
            ign, ci.kube_api_bind_port, ci.kube_api_bind_port_alt, ci.kube_api_server_ip, ci.proxy, ci.net_interface
        )
    return ign


def join_cluster(cj: ClusterJoin) -> Ignition:
    ign = cluster_common(cj.os_registry, cj.os_tag, cj.image_registry, cj.net_interface, ACTION_JOIN)
    ign.add_file(File(KUBEADM_FILE_PATH, kubeadm_join_yaml(cj), mode=0o600))

    # workers never carry the control plane load balancer
    if cj.role == ROLE_CONTROL_PLANE and cj.internal_lb:
        ign = ignition_for_virtual_ip(
            ign, cj.kube_api_bind_port, cj.kube_api_bind_port_alt, cj.kube_api_server_ip, cj.proxy, cj.net_interface
        )
    return ign


def virtual_ip_files(bind_port: int, alt_port: int, virtual_ip: str, net_interface: str) -> list[File]:
    return [
        File(
            KEEPALIVED_CONFIG_PATH,
            render(KEEPALIVED_CONFIG, iface=net_interface, priority="50", virtual_ip=virtual_ip, peers=""),
            mode=0o644,
            user=KEEPALIVED_USER,
            group=KEEPALIVED_USER,
        ),
        File(
            KEEPALIVED_CHECK_SCRIPT_PATH,
            render(
                KEEPALIVED_CHECK_SCRIPT,
                virtual_ip=virtual_ip,
                bind_port=bind_port,
                keepalived_config=KEEPALIVED_CONFIG_PATH,
            ),
            mode=0o755,
            user=KEEPALIVED_USER,
            group=KEEPALIVED_USER,
        ),
        File(KEEPALIVED_STATE_SCRIPT_PATH, KEEPALIVED_STATE_SCRIPT, mode=0o755, user=KEEPALIVED_USER, group=KEEPALIVED_USER),
        File(KEEPALIVED_LOG_PATH, "", mode=0o644, user=KEEPALIVED_USER, group=KEEPALIVED_USER),
        File(
            NGINX_CONFIG_PATH,
            render(NGINX_CONFIG, bind_port=bind_port, alt_port=alt_port),
            mode=0o644,
            user=NGINX_USER,
            group=NGINX_USER,
        ),
        File(NGINX_PULL_PATH, render(NGINX_PULL, image=NGINX_IMAGE), mode=0o755),
        File(NGINX_START_PATH, render(NGINX_START, image=NGINX_IMAGE), mode=0o755),
        File(NGINX_IMAGE_PATH, f"IMAGE={NGINX_IMAGE}", mode=0o644),
    ]


def virtual_ip_units(proxy: Optional[Proxy]) -> list[Unit]:
    nginx = Unit(NGINX_SERVICE, enabled=True, contents=NGINX_SERVICE_UNIT)
    if proxy is not None and not proxy.is_empty():
        nginx.dropins.append(Dropin("proxy.conf", proxy_dropin(proxy)))

    return [
        nginx,
        Unit(NGINX_REFRESH_SERVICE, enabled=True, contents=render(REFRESH_SERVICE_UNIT, what="Nginx", unit=NGINX_SERVICE)),
        Unit(
            NGINX_REFRESH_PATH,
            enabled=True,
            contents=render(REFRESH_PATH_UNIT, what="Nginx", watched=NGINX_CONFIG_PATH, unit=NGINX_REFRESH_SERVICE),
        ),
        Unit(KEEPALIVED_SERVICE, enabled=True),
        Unit(
            KEEPALIVED_REFRESH_SERVICE,
            enabled=True,
            contents=render(REFRESH_SERVICE_UNIT, what="Keepalived", unit=KEEPALIVED_SERVICE),
        ),
        Unit(
            KEEPALIVED_REFRESH_PATH,
            enabled=True,
            contents=render(
                REFRESH_PATH_UNIT, what="Keepalived", watched=KEEPALIVED_CONFIG_PATH, unit=KEEPALIVED_REFRESH_SERVICE
            ),
        ),
    ]


def ignition_for_virtual_ip(
    ign: Ignition,
    bind_port: int,
    alt_port: int,
    virtual_ip: str,
    proxy: Optional[Proxy],
    net_interface: str,
) -> Ignition:
    """Add keepalived and the nginx load balancer to *ign*."""
    extra = Ignition()
    extra.add_group(Group(NGINX_USER, system=True))
    extra.add_user(User(NGINX_USER, primary_group=NGINX_USER, shell="/sbin/nologin", system=True, no_create_home=True))
    for f in virtual_ip_files(bind_port, alt_port, virtual_ip, net_interface):
        extra.add_file(f)
    for u in virtual_ip_units(proxy):
        extra.add_unit(u)
    return merge(ign, extra)


def proxy(in_proxy: Proxy, *no_proxies: str) -> Ignition:
    """
    Proxy drop-ins for every service that pulls images. Cluster-internal
    ranges in *no_proxies* are appended to no_proxy.
    """
    ign = Ignition()
    if in_proxy.is_empty():
        return ign

    extra = ",".join(n for n in no_proxies if n)
    no_proxy = ",".join(x for x in (in_proxy.no_proxy, extra) if x)
    conf = proxy_dropin(Proxy(https_proxy=in_proxy.https_proxy, http_proxy=in_proxy.http_proxy, no_proxy=no_proxy))

    ign.add_unit(Unit(CRIO_SERVICE, enabled=True, dropins=[Dropin("proxy.conf", conf)]))
    ign.add_unit(Unit(KUBELET_SERVICE, enabled=True))
    ign.add_unit(Unit(OCNE_UPDATE_SERVICE, enabled=True, dropins=[Dropin("proxy.conf", conf)]))
    ign.add_unit(Unit(RPM_OSTREED_SERVICE, dropins=[Dropin("proxy.conf", conf)]))
    return ign


def ocne_user(ssh_key: str = "", ssh_key_path: str = "", password: str = "") -> Ignition:
    if ssh_key:
        log.debug("sshPublicKey set in configuration, ignoring sshPublicKeyPath")
    elif ssh_key_path:
        log.debug("reading ssh public key from %s", ssh_key_path)
        try:
            ssh_key = Path(ssh_key_path).expanduser().read_text().strip()
        except OSError as exc:
            raise ConfigInvalidError(f"cannot read ssh public key {ssh_key_path}: {exc}") from exc

    ign = Ignition()
    ign.add_user(
        User(
            "ocne",
            ssh_keys=[ssh_key] if ssh_key else [],
            password_hash=password,
            groups=["wheel"],
            shell="/usr/bin/rescue.sh",
        )
    )
    return ign
