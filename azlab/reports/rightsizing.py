"""VM right-sizing report.

Functions:
    classify(avg_cpu, peak_cpu, memory_used)        -> (tier, action, reason)
    recommend_size(size, action)                    -> (size | None, note)
    get_rightsizing_report(arm, resource_group, days)  -> dict

Utilization comes from Azure Monitor (``Percentage CPU`` average/maximum and
``Available Memory Bytes`` average at 1-hour grain) and is matched against
THRESHOLDS in order; the first match wins. Sizes move along the family
ladders in SIZE_LADDERS.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from azlab.client import ArmClient, AzureClientError
from azlab.models import SizeRecommendation
from azlab.resources.compute import list_vms

METRICS_API_VERSION = "2018-01-01"

logger = logging.getLogger(__name__)

CPU_METRIC = "Percentage CPU"
MEMORY_METRIC = "Available Memory Bytes"

#: Used memory at or above this share blocks any downsize
MEMORY_PRESSURE_PERCENT = 85.0

IDLE = "idle"
UNDERUTILIZED = "underutilized"
OPTIMAL = "optimal"
OVERUTILIZED = "overutilized"
UNKNOWN = "unknown"
TIERS = (IDLE, UNDERUTILIZED, OPTIMAL, OVERUTILIZED, UNKNOWN)

DEALLOCATE_OR_SMALLEST = "deallocate-or-smallest"
DOWNSIZE = "downsize"
KEEP = "keep"
UPSIZE = "upsize"
NO_ACTION = "none"
ACTIONABLE = (DEALLOCATE_OR_SMALLEST, DOWNSIZE, UPSIZE)


@dataclass(frozen=True)
class Threshold:
    tier: str
    action: str
    max_avg_cpu: float
    max_peak_cpu: float | None = None

    def matches(self, avg_cpu: float, peak_cpu: float) -> bool:
        if avg_cpu >= self.max_avg_cpu:
            return False
        return self.max_peak_cpu is None or peak_cpu < self.max_peak_cpu


#: Evaluated in order; anything that matches none is OVERUTILIZED
THRESHOLDS: tuple[Threshold, ...] = (
    Threshold(IDLE, DEALLOCATE_OR_SMALLEST, max_avg_cpu=5.0, max_peak_cpu=20.0),
    Threshold(UNDERUTILIZED, DOWNSIZE, max_avg_cpu=20.0, max_peak_cpu=60.0),
    Threshold(OPTIMAL, KEEP, max_avg_cpu=70.0),
)


@dataclass(frozen=True)
class VmSize:
    name: str
    vcpus: int
    memory_gb: float


def _ladder(*sizes: tuple[str, int, float]) -> tuple[VmSize, ...]:
    return tuple(VmSize(f"Standard_{n}", c, m) for n, c, m in sizes)


#: Family ladders, smallest first
SIZE_LADDERS: dict[str, tuple[VmSize, ...]] = {
    "B": _ladder(
        ("B1ls", 1, 0.5), ("B1s", 1, 1), ("B1ms", 1, 2), ("B2s", 2, 4), ("B2ms", 2, 8),
        ("B4ms", 4, 16), ("B8ms", 8, 32), ("B12ms", 12, 48), ("B16ms", 16, 64),
        ("B20ms", 20, 80),
    ),
    "Dsv5": _ladder(
        ("D2s_v5", 2, 8), ("D4s_v5", 4, 16), ("D8s_v5", 8, 32), ("D16s_v5", 16, 64),
        ("D32s_v5", 32, 128), ("D48s_v5", 48, 192), ("D64s_v5", 64, 256),
        ("D96s_v5", 96, 384),
    ),
    "Esv5": _ladder(
        ("E2s_v5", 2, 16), ("E4s_v5", 4, 32), ("E8s_v5", 8, 64), ("E16s_v5", 16, 128),
        ("E20s_v5", 20, 160), ("E32s_v5", 32, 256), ("E48s_v5", 48, 384),
        ("E64s_v5", 64, 512), ("E96s_v5", 96, 672),
    ),
}


# ---------------------------------------------------------------------------
# Pure heuristics
# ---------------------------------------------------------------------------

def classify(avg_cpu: float | None, peak_cpu: float | None,
             memory_used: float | None = None) -> tuple[str, str, str]:
    """Map utilization to ``(tier, action, reason)``."""
    if avg_cpu is None:
        return UNKNOWN, NO_ACTION, "No CPU metrics in the window (VM stopped or new)."
    peak = peak_cpu if peak_cpu is not None else avg_cpu

    for threshold in THRESHOLDS:
        if threshold.matches(avg_cpu, peak):
            tier, action = threshold.tier, threshold.action
            break
    else:
        tier, action = OVERUTILIZED, UPSIZE

    reason = f"avg CPU {avg_cpu:.1f}%, peak {peak:.1f}%"
    if memory_used is not None:
        reason += f", memory used {memory_used:.1f}%"

    if action in (DOWNSIZE, DEALLOCATE_OR_SMALLEST) and memory_used is not None \
            and memory_used >= MEMORY_PRESSURE_PERCENT:
        return OPTIMAL, KEEP, reason + " (memory pressure blocks downsizing)"
    return tier, action, reason


def find_size(size: str) -> tuple[tuple[VmSize, ...], int] | None:
    """Return ``(ladder, index)`` for *size*, matching case-insensitively."""
    wanted = (size or "").lower()
    for ladder in SIZE_LADDERS.values():
        for i, vm_size in enumerate(ladder):
            if vm_size.name.lower() == wanted:
                return ladder, i
    return None


def recommend_size(size: str, action: str) -> tuple[str | None, str]:
    """Apply *action* to *size* along its ladder; returns ``(new size, note)``."""
    if action == NO_ACTION:
        return None, ""
    if action == KEEP:
        return size, ""

    found = find_size(size)
    if found is None:
        return None, f"Size '{size}' is not in a known family; review manually."
    ladder, i = found

    if action == DOWNSIZE:
        if i == 0:
            return None, "Already the smallest size in its family."
        return ladder[i - 1].name, ""
    if action == DEALLOCATE_OR_SMALLEST:
        if i == 0:
            return None, "Already the smallest size; deallocate when not in use."
        return ladder[0].name, "Or deallocate when not in use."
    if action == UPSIZE:
        if i == len(ladder) - 1:
            return None, "Already the largest size in its family; consider another family."
        return ladder[i + 1].name, ""
    raise ValueError(f"Unknown action '{action}'")


def summarise_metrics(data: dict) -> tuple[float | None, float | None, float | None]:
    """Reduce a Monitor metrics response to ``(avg cpu, peak cpu, avg available bytes)``.

    Null datapoints (gaps while the VM was off) are ignored.
    """
    series: dict[str, list[dict]] = {}
    for metric in data.get("value", []):
        name = metric.get("name", {}).get("value")
        points = [p for ts in metric.get("timeseries", []) for p in ts.get("data", [])]
        series[name] = points

    cpu = series.get(CPU_METRIC, [])
    averages = [p["average"] for p in cpu if p.get("average") is not None]
    maxima = [p["maximum"] for p in cpu if p.get("maximum") is not None]
    memory = [p["average"] for p in series.get(MEMORY_METRIC, [])
              if p.get("average") is not None]

    avg_cpu = sum(averages) / len(averages) if averages else None
    peak_cpu = max(maxima) if maxima else None
    avg_available = sum(memory) / len(memory) if memory else None
    return avg_cpu, peak_cpu, avg_available


def memory_used_percent(size: str, available_bytes: float | None) -> float | None:
    found = find_size(size)
    if found is None or available_bytes is None:
        return None
    ladder, i = found
    total = ladder[i].memory_gb * 1024 ** 3
    used = 100.0 - available_bytes / total * 100.0
    return round(min(max(used, 0.0), 100.0), 1)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_vm_metrics(arm: ArmClient, vm_id: str, days: int = 14,
                   now: datetime | None = None) -> dict:
    end = now or datetime.now(timezone.utc)
    start = end - timedelta(days=days)
    params = {
        "metricnames": f"{CPU_METRIC},{MEMORY_METRIC}",
        "timespan": f"{start.strftime('%Y-%m-%dT%H:%M:%SZ')}/{end.strftime('%Y-%m-%dT%H:%M:%SZ')}",
        "interval": "PT1H",
        "aggregation": "Average,Maximum",
    }
    return arm.get(f"{vm_id}/providers/Microsoft.Insights/metrics", METRICS_API_VERSION, params)


def get_rightsizing_report(arm: ArmClient, resource_group: str | None = None,
                           days: int = 14, now: datetime | None = None) -> dict:
    """Recommend a size for every VM in the subscription or *resource_group*."""
    if days <= 0:
        raise ValueError("The metrics window must be at least one day.")

    recommendations: list[SizeRecommendation] = []
    for vm in list_vms(arm, resource_group):
        try:
            metrics = get_vm_metrics(arm, vm["id"], days, now)
        except AzureClientError as exc:
            logger.warning("No metrics for VM '%s': %s", vm["name"], exc)
            metrics = {}
        avg_cpu, peak_cpu, available = summarise_metrics(metrics)
        memory_used = memory_used_percent(vm["size"], available)
        tier, action, reason = classify(avg_cpu, peak_cpu, memory_used)
        recommended, note = recommend_size(vm["size"], action)

        recommendations.append(SizeRecommendation(
            vm_id=vm["id"],
            vm_name=vm["name"],
            resource_group=vm["resource_group"],
            current_size=vm["size"],
            avg_cpu=round(avg_cpu, 2) if avg_cpu is not None else None,
            peak_cpu=round(peak_cpu, 2) if peak_cpu is not None else None,
            avg_memory_used=memory_used,
            tier=tier,
            action=action,
            recommended_size=recommended,
            reason=f"{reason}. {note}".strip() if note else reason,
        ))

    return {
        "report_type":     "rightsizing",
        "subscription_id": arm.subscription_id,
        "resource_group":  resource_group,
        "generated_at":    datetime.now(timezone.utc).isoformat(),
        "window_days":     days,
        "summary":         _build_summary(recommendations),
        "recommendations": [r.to_dict() for r in recommendations],
    }


def _build_summary(recommendations: list[SizeRecommendation]) -> dict:
    by_tier = {t: 0 for t in TIERS}
    for rec in recommendations:
        by_tier[rec.tier] += 1
    return {
        "total":      len(recommendations),
        "by_tier":    by_tier,
        "actionable": sum(1 for r in recommendations if r.action in ACTIONABLE),
    }
