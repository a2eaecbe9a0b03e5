"""Tests for azlab/reports/inventory.py"""

from azlab.client import ArmClient
from azlab.reports.inventory import get_inventory_report

ARM = "https://management.azure.com"
SUB = "00000000-0000-0000-0000-000000000001"


def _resource(rg: str, type_: str, name: str, location: str = "eastus",
              tags: dict | None = None) -> dict:
    return {
        "id": f"/subscriptions/{SUB}/resourceGroups/{rg}/providers/{type_}/{name}",
        "name": name, "type": type_, "location": location, "tags": tags,
    }


RESOURCES = [
    _resource("lab-b", "Microsoft.Storage/storageAccounts", "labsa",
              tags={"purpose": "lab", "owner": "alice"}),
    _resource("lab-a", "Microsoft.Compute/virtualMachines", "vm1", tags={"purpose": "lab"}),
    _resource("lab-a", "Microsoft.Network/networkInterfaces", "vm1-nic", location="westeurope"),
    _resource("lab-a", "Microsoft.Compute/virtualMachines", "vm0",
              tags={"purpose": "lab", "owner": ""}),
]


def _mock(requests_mock):
    requests_mock.get(f"{ARM}/subscriptions/{SUB}/resources", json={"value": RESOURCES})


def test_report_structure(requests_mock):
    _mock(requests_mock)
    report = get_inventory_report(ArmClient(SUB, "tok"), required_tags=["purpose", "owner"])
    assert report["report_type"] == "inventory"
    assert report["required_tags"] == ["purpose", "owner"]
    assert report["resource_group"] is None
    assert len(report["resources"]) == 4


def test_rows_sorted_by_group_type_name(requests_mock):
    _mock(requests_mock)
    rows = get_inventory_report(ArmClient(SUB, "tok"))["resources"]
    assert [r["name"] for r in rows] == ["vm0", "vm1", "vm1-nic", "labsa"]
    assert rows[0]["resource_group"] == "lab-a"


def test_missing_tags_per_row(requests_mock):
    _mock(requests_mock)
    rows = {r["name"]: r for r in get_inventory_report(
        ArmClient(SUB, "tok"), required_tags=["purpose", "owner"])["resources"]}
    assert rows["labsa"]["missing_tags"] == []
    assert rows["vm1"]["missing_tags"] == ["owner"]
    assert rows["vm0"]["missing_tags"] == ["owner"]
    assert rows["vm1-nic"]["missing_tags"] == ["purpose", "owner"]
    assert rows["vm1-nic"]["tags"] == {}


def test_summary(requests_mock):
    _mock(requests_mock)
    s = get_inventory_report(ArmClient(SUB, "tok"), required_tags=["purpose", "owner"])["summary"]
    assert s["total"] == 4
    assert s["by_type"] == {
        "Microsoft.Compute/virtualMachines": 2,
        "Microsoft.Network/networkInterfaces": 1,
        "Microsoft.Storage/storageAccounts": 1,
    }
    assert s["by_location"] == {"eastus": 3, "westeurope": 1}
    assert s["by_resource_group"] == {"lab-a": 3, "lab-b": 1}
    assert s["untagged"] == 1
    assert s["non_compliant"] == 3


def test_no_required_tags_means_compliant(requests_mock):
    _mock(requests_mock)
    s = get_inventory_report(ArmClient(SUB, "tok"))["summary"]
    assert s["non_compliant"] == 0


def test_scoped_to_resource_group(requests_mock):
    requests_mock.get(f"{ARM}/subscriptions/{SUB}/resourceGroups/lab-a/resources",
                      json={"value": RESOURCES[1:]})
    report = get_inventory_report(ArmClient(SUB, "tok"), resource_group="lab-a")
    assert report["resource_group"] == "lab-a"
    assert report["summary"]["total"] == 3
