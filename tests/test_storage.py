"""Tests for azlab/resources/storage.py"""

import pytest

from azlab.client import ArmClient, ConflictError
from azlab.resources.storage import (
    check_name_availability,
    create_storage_account,
    delete_storage_account,
    list_storage_accounts,
    validate_storage_name,
)

ARM  = "https://management.azure.com"
SUB  = "00000000-0000-0000-0000-000000000001"
RG   = f"/subscriptions/{SUB}/resourceGroups/lab-rg"
SA   = f"{ARM}{RG}/providers/Microsoft.Storage/storageAccounts"
AVAILABILITY = f"{ARM}/subscriptions/{SUB}/providers/Microsoft.Storage/checkNameAvailability"


def _client():
    return ArmClient(SUB, "tok")


def _account(name: str = "labsa01", state: str = "Succeeded") -> dict:
    return {
        "id": f"{RG}/providers/Microsoft.Storage/storageAccounts/{name}",
        "name": name, "location": "eastus", "kind": "StorageV2",
        "sku": {"name": "Standard_LRS"}, "tags": {"purpose": "lab"},
        "properties": {
            "provisioningState": state,
            "primaryEndpoints": {"blob": f"https://{name}.blob.core.windows.net/"},
        },
    }


# ---------------------------------------------------------------------------
# validate_storage_name
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("name", ["abc", "labsa01", "a" * 24])
def test_valid_names(name):
    validate_storage_name(name)


@pytest.mark.parametrize("name", ["ab", "a" * 25, "Lab-SA", "lab_sa", ""])
def test_invalid_names(name):
    with pytest.raises(ValueError, match="Invalid storage account name"):
        validate_storage_name(name)


# ---------------------------------------------------------------------------
# check_name_availability
# ---------------------------------------------------------------------------

def test_name_available(requests_mock):
    requests_mock.post(AVAILABILITY, json={"nameAvailable": True})
    assert check_name_availability(_client(), "labsa01") == (True, "")
    assert requests_mock.last_request.json() == {
        "name": "labsa01", "type": "Microsoft.Storage/storageAccounts",
    }


def test_name_taken(requests_mock):
    requests_mock.post(AVAILABILITY, json={"nameAvailable": False, "reason": "AlreadyExists",
                                           "message": "The storage account named labsa01 is already taken."})
    available, reason = check_name_availability(_client(), "labsa01")
    assert available is False
    assert "already taken" in reason


# ---------------------------------------------------------------------------
# create_storage_account
# ---------------------------------------------------------------------------

def test_create_storage_account(requests_mock):
    requests_mock.post(AVAILABILITY, json={"nameAvailable": True})
    requests_mock.put(f"{SA}/labsa01", json=_account())
    account = create_storage_account(_client(), "lab-rg", "labsa01", "eastus",
                                     tags={"purpose": "lab"})
    assert account["name"] == "labsa01"
    assert account["resource_group"] == "lab-rg"
    assert account["sku"] == "Standard_LRS"
    assert account["blob_endpoint"] == "https://labsa01.blob.core.windows.net/"

    body = requests_mock.last_request.json()
    assert body["properties"] == {
        "supportsHttpsTrafficOnly": True,
        "minimumTlsVersion": "TLS1_2",
        "allowBlobPublicAccess": False,
    }
    assert body["tags"] == {"purpose": "lab"}


def test_create_waits_for_provisioning(requests_mock):
    requests_mock.post(AVAILABILITY, json={"nameAvailable": True})
    requests_mock.put(f"{SA}/labsa01", status_code=202,
                      headers={"Location": f"{ARM}/subscriptions/{SUB}/operations/op1"})
    requests_mock.get(f"{ARM}/subscriptions/{SUB}/operations/op1",
                      [{"status_code": 202}, {"status_code": 200, "json": _account()}])
    account = create_storage_account(_client(), "lab-rg", "labsa01", "eastus", poll_interval=0)
    assert account["provisioning_state"] == "Succeeded"


def test_create_name_taken_raises_conflict(requests_mock):
    requests_mock.post(AVAILABILITY, json={"nameAvailable": False, "reason": "AlreadyExists"})
    with pytest.raises(ConflictError) as info:
        create_storage_account(_client(), "lab-rg", "labsa01", "eastus")
    assert info.value.code == "StorageAccountAlreadyTaken"
    assert requests_mock.call_count == 1


def test_create_rejects_bad_sku_before_any_call(requests_mock):
    with pytest.raises(ValueError, match="Unknown storage SKU"):
        create_storage_account(_client(), "lab-rg", "labsa01", "eastus", sku="Cheap_LRS")
    with pytest.raises(ValueError, match="Unknown storage kind"):
        create_storage_account(_client(), "lab-rg", "labsa01", "eastus", kind="Tape")
    assert requests_mock.call_count == 0


# ---------------------------------------------------------------------------
# list / delete
# ---------------------------------------------------------------------------

def test_list_in_subscription(requests_mock):
    requests_mock.get(f"{ARM}/subscriptions/{SUB}/providers/Microsoft.Storage/storageAccounts",
                      json={"value": [_account("a1"), _account("a2")]})
    assert [a["name"] for a in list_storage_accounts(_client())] == ["a1", "a2"]


def test_list_in_group(requests_mock):
    requests_mock.get(SA, json={"value": [_account()]})
    assert list_storage_accounts(_client(), "lab-rg")[0]["tags"] == {"purpose": "lab"}


def test_delete_storage_account(requests_mock):
    requests_mock.delete(f"{SA}/labsa01", status_code=200)
    delete_storage_account(_client(), "lab-rg", "labsa01")
    assert requests_mock.last_request.method == "DELETE"
    assert "api-version=2023-01-01" in requests_mock.last_request.url
