"""Container-instance (container group) scripts."""

import logging
import re

from azlab.client import ArmClient, Operation
from azlab.ids import resource_group_of
from azlab.models import Tags

ACI_API_VERSION = "2023-05-01"
ACI_PROVIDER = "Microsoft.ContainerInstance"

RESTART_POLICIES = ("Always", "OnFailure", "Never")

_DNS_LABEL_RE = re.compile(r"^[a-z][a-z0-9-]{1,61}[a-z0-9]$")

logger = logging.getLogger(__name__)


def build_container_group(
    name: str,
    image: str,
    location: str,
    cpu: float = 1.0,
    memory_gb: float = 1.5,
    ports: list[int] | None = None,
    env: dict[str, str] | None = None,
    dns_label: str | None = None,
    restart_policy: str = "Always",
    tags: Tags | None = None,
) -> dict:
    """Body for a single-container Linux group with a public IP."""
    if restart_policy not in RESTART_POLICIES:
        raise ValueError(
            f"Unknown restart policy '{restart_policy}'. Choose from: {', '.join(RESTART_POLICIES)}"
        )
    if dns_label and not _DNS_LABEL_RE.match(dns_label):
        raise ValueError(f"Invalid DNS label '{dns_label}'.")
    if cpu <= 0 or memory_gb <= 0:
        raise ValueError("CPU and memory requests must be positive.")

    ports = ports or [80]
    container = {
        "name": name,
        "properties": {
            "image": image,
            "resources": {"requests": {"cpu": cpu, "memoryInGB": memory_gb}},
            "ports": [{"port": p, "protocol": "TCP"} for p in ports],
            "environmentVariables": [
                {"name": k, "value": v} for k, v in sorted((env or {}).items())
            ],
        },
    }
    ip_address: dict = {
        "type": "Public",
        "ports": [{"port": p, "protocol": "TCP"} for p in ports],
    }
    if dns_label:
        ip_address["dnsNameLabel"] = dns_label

    return {
        "location": location,
        "tags": tags or {},
        "properties": {
            "containers": [container],
            "osType": "Linux",
            "restartPolicy": restart_policy,
            "ipAddress": ip_address,
        },
    }


def create_container_group(
    client: ArmClient,
    resource_group: str,
    name: str,
    image: str,
    location: str,
    cpu: float = 1.0,
    memory_gb: float = 1.5,
    ports: list[int] | None = None,
    env: dict[str, str] | None = None,
    dns_label: str | None = None,
    restart_policy: str = "Always",
    tags: Tags | None = None,
    timeout: float = 900,
    poll_interval: float = 5,
) -> dict:
    body = build_container_group(name, image, location, cpu, memory_gb, ports, env,
                                 dns_label, restart_policy, tags)
    group = client.begin_put(_group_path(client, resource_group, name), ACI_API_VERSION,
                             body).wait(timeout, poll_interval)
    summary = _summarise(group)
    logger.info("Container group '%s' running %s at %s", name, image,
                summary["fqdn"] or summary["ip"])
    return summary


def list_container_groups(client: ArmClient, resource_group: str | None = None) -> list[dict]:
    if resource_group:
        path = client.provider_path(resource_group, ACI_PROVIDER, "containerGroups")
    else:
        path = f"{client.subscription_scope}/providers/{ACI_PROVIDER}/containerGroups"
    return [_summarise(g) for g in client.list(path, ACI_API_VERSION)]


def get_container_logs(
    client: ArmClient,
    resource_group: str,
    group: str,
    container: str | None = None,
    tail: int | None = None,
) -> str:
    """Return the log text of *container* (defaults to the group's first container)."""
    group_path = _group_path(client, resource_group, group)
    if container is None:
        details = client.get(group_path, ACI_API_VERSION)
        containers = details.get("properties", {}).get("containers", [])
        if not containers:
            raise ValueError(f"Container group '{group}' has no containers.")
        container = containers[0]["name"]

    params = {"tail": tail} if tail else None
    data = client.get(f"{group_path}/containers/{container}/logs", ACI_API_VERSION, params)
    return data.get("content", "")


def delete_container_group(client: ArmClient, resource_group: str, name: str) -> Operation:
    logger.info("Deleting container group '%s'", name)
    return client.begin_delete(_group_path(client, resource_group, name), ACI_API_VERSION)


def _group_path(client: ArmClient, resource_group: str, name: str) -> str:
    return client.provider_path(resource_group, ACI_PROVIDER, "containerGroups", name)


def _summarise(group: dict) -> dict:
    props = group.get("properties", {})
    ip = props.get("ipAddress") or {}
    containers = props.get("containers", [])
    return {
        "name": group.get("name"),
        "resource_group": resource_group_of(group.get("id", "")),
        "location": group.get("location"),
        "images": [c.get("properties", {}).get("image") for c in containers],
        "state": props.get("instanceView", {}).get("state"),
        "provisioning_state": props.get("provisioningState"),
        "ip": ip.get("ip"),
        "fqdn": ip.get("fqdn"),
        "tags": group.get("tags") or {},
    }
