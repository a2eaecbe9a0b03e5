"""Tests for azlab/reports/rightsizing.py"""

from datetime import datetime, timezone
from urllib.parse import unquote

import pytest

from azlab.client import ArmClient
from azlab.reports.rightsizing import (
    classify,
    get_rightsizing_report,
    memory_used_percent,
    recommend_size,
    summarise_metrics,
)

ARM = "https://management.azure.com"
SUB = "00000000-0000-0000-0000-000000000001"
GIB = 1024 ** 3
NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _vm_id(name: str, rg: str = "lab-rg") -> str:
    return f"/subscriptions/{SUB}/resourceGroups/{rg}/providers/Microsoft.Compute/virtualMachines/{name}"


def _vm(name: str, size: str) -> dict:
    return {
        "id": _vm_id(name), "name": name, "location": "eastus",
        "properties": {
            "hardwareProfile": {"vmSize": size},
            "instanceView": {"statuses": [{"code": "PowerState/running"}]},
        },
    }


def _metrics(cpu: list[tuple[float | None, float | None]], available: list[float] | None = None) -> dict:
    value = [{
        "name": {"value": "Percentage CPU"},
        "timeseries": [{"data": [{"average": a, "maximum": m} for a, m in cpu]}],
    }]
    if available is not None:
        value.append({
            "name": {"value": "Available Memory Bytes"},
            "timeseries": [{"data": [{"average": b} for b in available]}],
        })
    return {"value": value}


def _mock_vms(requests_mock, vms: list[dict], metrics: dict[str, dict]) -> None:
    requests_mock.get(
        f"{ARM}/subscriptions/{SUB}/providers/Microsoft.Compute/virtualMachines",
        json={"value": vms},
    )
    for name, data in metrics.items():
        requests_mock.get(f"{ARM}{_vm_id(name)}/providers/Microsoft.Insights/metrics", json=data)


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("avg, peak, tier, action", [
    (2.0, 10.0, "idle", "deallocate-or-smallest"),
    (3.0, 25.0, "underutilized", "downsize"),
    (5.0, 10.0, "underutilized", "downsize"),
    (15.0, 50.0, "underutilized", "downsize"),
    (10.0, 80.0, "optimal", "keep"),
    (45.0, 95.0, "optimal", "keep"),
    (70.0, 90.0, "overutilized", "upsize"),
    (88.0, 100.0, "overutilized", "upsize"),
])
def test_classify_thresholds(avg, peak, tier, action):
    assert classify(avg, peak)[:2] == (tier, action)


def test_classify_without_metrics_is_unknown():
    tier, action, reason = classify(None, None)
    assert (tier, action) == ("unknown", "none")
    assert "No CPU metrics" in reason


def test_classify_missing_peak_uses_average():
    assert classify(2.0, None)[:2] == ("idle", "deallocate-or-smallest")


def test_memory_pressure_blocks_downsize():
    tier, action, reason = classify(10.0, 30.0, memory_used=90.0)
    assert (tier, action) == ("optimal", "keep")
    assert "memory pressure" in reason


def test_memory_pressure_does_not_block_upsize():
    assert classify(80.0, 99.0, memory_used=95.0)[:2] == ("overutilized", "upsize")


def test_reason_mentions_utilization():
    reason = classify(12.345, 40.0, memory_used=50.0)[2]
    assert reason == "avg CPU 12.3%, peak 40.0%, memory used 50.0%"


# ---------------------------------------------------------------------------
# recommend_size
# ---------------------------------------------------------------------------

def test_downsize_moves_one_step():
    assert recommend_size("Standard_D4s_v5", "downsize") == ("Standard_D2s_v5", "")


def test_upsize_moves_one_step():
    assert recommend_size("Standard_B2s", "upsize") == ("Standard_B2ms", "")


def test_idle_goes_to_smallest():
    size, note = recommend_size("Standard_E16s_v5", "deallocate-or-smallest")
    assert size == "Standard_E2s_v5"
    assert "deallocate" in note


def test_size_lookup_is_case_insensitive():
    assert recommend_size("standard_b2s", "downsize")[0] == "Standard_B1ms"


def test_keep_returns_current_size():
    assert recommend_size("Standard_B2s", "keep") == ("Standard_B2s", "")


def test_no_action_returns_none():
    assert recommend_size("Standard_B2s", "none") == (None, "")


def test_smallest_cannot_downsize():
    size, note = recommend_size("Standard_B1ls", "downsize")
    assert size is None
    assert "smallest" in note


def test_largest_cannot_upsize():
    size, note = recommend_size("Standard_D96s_v5", "upsize")
    assert size is None
    assert "largest" in note


def test_unknown_family():
    size, note = recommend_size("Standard_NC6", "downsize")
    assert size is None
    assert "not in a known family" in note


def test_unknown_action_raises():
    with pytest.raises(ValueError):
        recommend_size("Standard_B2s", "explode")


# ---------------------------------------------------------------------------
# summarise_metrics / memory_used_percent
# ---------------------------------------------------------------------------

def test_summarise_metrics_ignores_gaps():
    data = _metrics([(10.0, 30.0), (None, None), (20.0, 50.0)], available=[GIB, None, 3 * GIB])
    avg, peak, available = summarise_metrics(data)
    assert avg == 15.0
    assert peak == 50.0
    assert available == 2 * GIB


def test_summarise_metrics_empty():
    assert summarise_metrics({"value": []}) == (None, None, None)


def test_memory_used_percent():
    # Standard_B2s has 4 GiB
    assert memory_used_percent("Standard_B2s", 1 * GIB) == 75.0


def test_memory_used_percent_clamped():
    assert memory_used_percent("Standard_B2s", 8 * GIB) == 0.0


def test_memory_used_percent_unknown():
    assert memory_used_percent("Standard_NC6", GIB) is None
    assert memory_used_percent("Standard_B2s", None) is None


# ---------------------------------------------------------------------------
# get_rightsizing_report
# ---------------------------------------------------------------------------

def test_report_recommendations(requests_mock):
    _mock_vms(requests_mock, [_vm("idle-vm", "Standard_B2ms"), _vm("busy-vm", "Standard_D2s_v5")], {
        "idle-vm": _metrics([(1.0, 5.0), (2.0, 8.0)]),
        "busy-vm": _metrics([(85.0, 100.0)]),
    })
    report = get_rightsizing_report(ArmClient(SUB, "tok"), now=NOW)

    assert report["report_type"] == "rightsizing"
    assert report["window_days"] == 14
    recs = {r["vm_name"]: r for r in report["recommendations"]}

    idle = recs["idle-vm"]
    assert idle["tier"] == "idle"
    assert idle["recommended_size"] == "Standard_B1ls"
    assert idle["avg_cpu"] == 1.5
    assert idle["peak_cpu"] == 8.0
    assert idle["resource_group"] == "lab-rg"

    busy = recs["busy-vm"]
    assert busy["tier"] == "overutilized"
    assert busy["recommended_size"] == "Standard_D4s_v5"


def test_report_summary(requests_mock):
    _mock_vms(requests_mock, [_vm("a", "Standard_B2s"), _vm("b", "Standard_B2s"), _vm("c", "Standard_B2s")], {
        "a": _metrics([(30.0, 60.0)]),
        "b": _metrics([(10.0, 30.0)]),
        "c": {"value": []},
    })
    s = get_rightsizing_report(ArmClient(SUB, "tok"), now=NOW)["summary"]
    assert s["total"] == 3
    assert s["by_tier"] == {"idle": 0, "underutilized": 1, "optimal": 1,
                            "overutilized": 0, "unknown": 1}
    assert s["actionable"] == 1


def test_report_applies_memory_pressure(requests_mock):
    _mock_vms(requests_mock, [_vm("mem", "Standard_B2s")], {
        "mem": _metrics([(10.0, 30.0)], available=[0.2 * GIB]),
    })
    rec = get_rightsizing_report(ArmClient(SUB, "tok"), now=NOW)["recommendations"][0]
    assert rec["avg_memory_used"] == 95.0
    assert rec["action"] == "keep"
    assert rec["recommended_size"] == "Standard_B2s"


def test_failed_metrics_call_marks_vm_unknown(requests_mock, caplog):
    _mock_vms(requests_mock, [_vm("a", "Standard_B2s"), _vm("b", "Standard_B2s")], {
        "b": _metrics([(10.0, 30.0)]),
    })
    requests_mock.get(f"{ARM}{_vm_id('a')}/providers/Microsoft.Insights/metrics", status_code=400,
                      json={"error": {"code": "BadRequest", "message": "Metric not supported"}})
    with caplog.at_level("WARNING", logger="azlab"):
        report = get_rightsizing_report(ArmClient(SUB, "tok"), now=NOW)

    recs = {r["vm_name"]: r for r in report["recommendations"]}
    assert (recs["a"]["tier"], recs["a"]["action"]) == ("unknown", "none")
    assert recs["a"]["avg_cpu"] is None
    assert recs["b"]["tier"] == "underutilized"
    assert "No metrics for VM 'a'" in caplog.text


def test_metrics_query_window(requests_mock):
    _mock_vms(requests_mock, [_vm("a", "Standard_B2s")], {"a": _metrics([(30.0, 60.0)])})
    get_rightsizing_report(ArmClient(SUB, "tok"), days=7, now=NOW)
    metrics_call = unquote(requests_mock.request_history[-1].url)
    assert "timespan=2026-03-08T12:00:00Z/2026-03-15T12:00:00Z" in metrics_call
    assert "interval=PT1H" in metrics_call
    assert "api-version=2018-01-01" in metrics_call


def test_report_scoped_to_resource_group(requests_mock):
    requests_mock.get(
        f"{ARM}/subscriptions/{SUB}/resourceGroups/lab-rg/providers/Microsoft.Compute/virtualMachines",
        json={"value": []},
    )
    report = get_rightsizing_report(ArmClient(SUB, "tok"), resource_group="lab-rg", now=NOW)
    assert report["resource_group"] == "lab-rg"
    assert report["recommendations"] == []


def test_report_rejects_empty_window():
    with pytest.raises(ValueError, match="at least one day"):
        get_rightsizing_report(ArmClient(SUB, "tok"), days=0)
