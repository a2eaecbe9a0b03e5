"""Virtual-machine scripts.

Functions:
    provision_vm(client, resource_group, name, ...)   -> dict
    list_vms(client, resource_group)                  -> list[dict]
    start_vm / deallocate_vm / delete_vm              -> Operation

``provision_vm`` builds the whole chain for one practice VM, each step
waited on before the next: NSG -> virtual network + subnet -> public IP ->
NIC -> VM.
"""

import logging

from azlab.client import ArmClient, Operation
from azlab.ids import resource_group_of
from azlab.models import Tags

COMPUTE_API_VERSION = "2023-09-01"
NETWORK_API_VERSION = "2023-09-01"
COMPUTE_PROVIDER = "Microsoft.Compute"
NETWORK_PROVIDER = "Microsoft.Network"

VNET_ADDRESS_SPACE = "10.0.0.0/16"
SUBNET_PREFIX = "10.0.0.0/24"

#: Image aliases -> (imageReference, os type)
IMAGES: dict[str, tuple[dict, str]] = {
    "ubuntu2204": ({
        "publisher": "Canonical",
        "offer": "0001-com-ubuntu-server-jammy",
        "sku": "22_04-lts-gen2",
        "version": "latest",
    }, "Linux"),
    "debian12": ({
        "publisher": "Debian",
        "offer": "debian-12",
        "sku": "12-gen2",
        "version": "latest",
    }, "Linux"),
    "win2022": ({
        "publisher": "MicrosoftWindowsServer",
        "offer": "WindowsServer",
        "sku": "2022-datacenter-azure-edition",
        "version": "latest",
    }, "Windows"),
}

_MGMT_PORTS = {"Linux": ("SSH", "22"), "Windows": ("RDP", "3389")}

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def build_nsg(location: str, os_type: str, allowed_source: str, tags: Tags) -> dict:
    rule_name, port = _MGMT_PORTS[os_type]
    return {
        "location": location,
        "tags": tags,
        "properties": {
            "securityRules": [{
                "name": f"Allow-{rule_name}",
                "properties": {
                    "priority": 1000,
                    "direction": "Inbound",
                    "access": "Allow",
                    "protocol": "Tcp",
                    "sourceAddressPrefix": allowed_source,
                    "sourcePortRange": "*",
                    "destinationAddressPrefix": "*",
                    "destinationPortRange": port,
                },
            }],
        },
    }


def build_vnet(location: str, subnet_name: str, nsg_id: str, tags: Tags) -> dict:
    return {
        "location": location,
        "tags": tags,
        "properties": {
            "addressSpace": {"addressPrefixes": [VNET_ADDRESS_SPACE]},
            "subnets": [{
                "name": subnet_name,
                "properties": {
                    "addressPrefix": SUBNET_PREFIX,
                    "networkSecurityGroup": {"id": nsg_id},
                },
            }],
        },
    }


def build_public_ip(location: str, tags: Tags) -> dict:
    return {
        "location": location,
        "tags": tags,
        "sku": {"name": "Standard"},
        "properties": {"publicIPAllocationMethod": "Static"},
    }


def build_nic(location: str, subnet_id: str, public_ip_id: str, tags: Tags) -> dict:
    return {
        "location": location,
        "tags": tags,
        "properties": {
            "ipConfigurations": [{
                "name": "ipconfig1",
                "properties": {
                    "subnet": {"id": subnet_id},
                    "publicIPAddress": {"id": public_ip_id},
                    "privateIPAllocationMethod": "Dynamic",
                },
            }],
        },
    }


def build_vm(
    location: str,
    name: str,
    size: str,
    image: str,
    nic_id: str,
    admin_username: str,
    ssh_public_key: str | None,
    admin_password: str | None,
    tags: Tags,
) -> dict:
    """Build the VM body. Linux needs a key or a password; Windows needs a password."""
    if image not in IMAGES:
        raise ValueError(f"Unknown image '{image}'. Choose from: {', '.join(IMAGES)}")
    image_ref, os_type = IMAGES[image]

    os_profile: dict = {"computerName": name[:15] if os_type == "Windows" else name,
                        "adminUsername": admin_username}
    if os_type == "Linux" and ssh_public_key:
        os_profile["linuxConfiguration"] = {
            "disablePasswordAuthentication": True,
            "ssh": {"publicKeys": [{
                "path": f"/home/{admin_username}/.ssh/authorized_keys",
                "keyData": ssh_public_key,
            }]},
        }
    elif admin_password:
        os_profile["adminPassword"] = admin_password
    else:
        raise ValueError(
            "Provide an SSH public key (Linux) or an admin password."
            if os_type == "Linux" else "Windows VMs require an admin password."
        )

    return {
        "location": location,
        "tags": tags,
        "properties": {
            "hardwareProfile": {"vmSize": size},
            "storageProfile": {
                "imageReference": image_ref,
                "osDisk": {
                    "createOption": "FromImage",
                    "deleteOption": "Delete",
                    "managedDisk": {"storageAccountType": "StandardSSD_LRS"},
                },
            },
            "osProfile": os_profile,
            "networkProfile": {
                "networkInterfaces": [{
                    "id": nic_id,
                    "properties": {"deleteOption": "Delete"},
                }],
            },
        },
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def provision_vm(
    client: ArmClient,
    resource_group: str,
    name: str,
    location: str,
    size: str = "Standard_B1s",
    image: str = "ubuntu2204",
    admin_username: str = "azureuser",
    ssh_public_key: str | None = None,
    admin_password: str | None = None,
    allowed_source: str = "*",
    tags: Tags | None = None,
    timeout: float = 900,
    poll_interval: float = 5,
) -> dict:
    """Provision a VM and its network; returns ids plus the public IP address."""
    tags = tags or {}
    # Validates image and credentials before anything is created
    vm_body = build_vm(location, name, size, image, "", admin_username,
                       ssh_public_key, admin_password, tags)
    os_type = IMAGES[image][1]

    def net(kind: str, res_name: str) -> str:
        return client.provider_path(resource_group, NETWORK_PROVIDER, kind, res_name)

    def put(path: str, api_version: str, body: dict) -> dict:
        logger.info("Creating %s", path.rsplit("/providers/", 1)[-1])
        return client.begin_put(path, api_version, body).wait(timeout, poll_interval)

    nsg = put(net("networkSecurityGroups", f"{name}-nsg"), NETWORK_API_VERSION,
              build_nsg(location, os_type, allowed_source, tags))
    vnet = put(net("virtualNetworks", f"{name}-vnet"), NETWORK_API_VERSION,
               build_vnet(location, "default", nsg["id"], tags))
    subnet_id = vnet["properties"]["subnets"][0]["id"]
    pip = put(net("publicIPAddresses", f"{name}-ip"), NETWORK_API_VERSION,
              build_public_ip(location, tags))
    nic = put(net("networkInterfaces", f"{name}-nic"), NETWORK_API_VERSION,
              build_nic(location, subnet_id, pip["id"], tags))

    vm_body["properties"]["networkProfile"]["networkInterfaces"][0]["id"] = nic["id"]
    vm = put(_vm_path(client, resource_group, name), COMPUTE_API_VERSION, vm_body)

    # The address is only allocated once the NIC is attached to a running VM
    pip = client.get(net("publicIPAddresses", f"{name}-ip"), NETWORK_API_VERSION)
    public_ip = pip.get("properties", {}).get("ipAddress")
    logger.info("VM '%s' ready in %s (%s), public IP %s", name, resource_group, size, public_ip)

    return {
        "name": name,
        "resource_group": resource_group,
        "size": size,
        "image": image,
        "vm_id": vm.get("id"),
        "nic_id": nic["id"],
        "nsg_id": nsg["id"],
        "vnet_id": vnet["id"],
        "public_ip": public_ip,
        "admin_username": admin_username,
    }


def list_vms(client: ArmClient, resource_group: str | None = None) -> list[dict]:
    """List VMs with their power state.

    The subscription-wide listing takes ``statusOnly``; the resource group
    listing only returns the instance view through ``$expand``.
    """
    if resource_group:
        path = client.provider_path(resource_group, COMPUTE_PROVIDER, "virtualMachines")
        params = {"$expand": "instanceView"}
    else:
        path = f"{client.subscription_scope}/providers/{COMPUTE_PROVIDER}/virtualMachines"
        params = {"statusOnly": "true"}
    vms = client.list(path, COMPUTE_API_VERSION, params)
    return [_summarise(vm) for vm in vms]


def start_vm(client: ArmClient, resource_group: str, name: str) -> Operation:
    logger.info("Starting VM '%s'", name)
    return client.begin_post(f"{_vm_path(client, resource_group, name)}/start",
                             COMPUTE_API_VERSION)


def deallocate_vm(client: ArmClient, resource_group: str, name: str) -> Operation:
    """Stop the VM and release its compute, so it no longer bills."""
    logger.info("Deallocating VM '%s'", name)
    return client.begin_post(f"{_vm_path(client, resource_group, name)}/deallocate",
                             COMPUTE_API_VERSION)


def delete_vm(client: ArmClient, resource_group: str, name: str) -> Operation:
    """Delete the VM; its OS disk and NIC go with it (deleteOption=Delete)."""
    logger.info("Deleting VM '%s'", name)
    return client.begin_delete(_vm_path(client, resource_group, name), COMPUTE_API_VERSION)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _vm_path(client: ArmClient, resource_group: str, name: str) -> str:
    return client.provider_path(resource_group, COMPUTE_PROVIDER, "virtualMachines", name)


def power_state(vm: dict) -> str | None:
    statuses = vm.get("properties", {}).get("instanceView", {}).get("statuses", [])
    for status in statuses:
        code = status.get("code", "")
        if code.startswith("PowerState/"):
            return code.split("/", 1)[1]
    return None


def _summarise(vm: dict) -> dict:
    props = vm.get("properties", {})
    image = props.get("storageProfile", {}).get("imageReference", {})
    return {
        "name": vm.get("name"),
        "resource_group": resource_group_of(vm.get("id", "")),
        "location": vm.get("location"),
        "size": props.get("hardwareProfile", {}).get("vmSize"),
        "os": props.get("storageProfile", {}).get("osDisk", {}).get("osType"),
        "image": "/".join(filter(None, (image.get("offer"), image.get("sku")))) or None,
        "power_state": power_state(vm),
        "provisioning_state": props.get("provisioningState"),
        "id": vm.get("id"),
        "tags": vm.get("tags") or {},
    }
