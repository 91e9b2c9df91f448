"""
opsdeck.openshift.analysis

Pure transforms over `oc` output.

Responsibilities:
- Enrich pods with their claim-backed mounts.
- Build the PVC / ConfigMap / Secret usage analysis for a namespace.
- Parse CLI tables (`ls -la`, `df -hP`, `oc adm top`) and quota/event documents.

Nothing here runs commands; `clients.openshift` feeds these functions.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

SERVICE_ACCOUNT_MOUNT = "/var/run/secrets/kubernetes.io"
DEFAULT_STORAGE_CLASS = "Standard"
DEBUG_MOUNT_PATH = "/mnt/data"

INFRA_PATTERNS = (
    "CRI-O",
    "system load",
    "name is reserved",
    "PLEG",
    "context deadline exceeded",
)
QUOTA_KEYS = ("cpu", "memory", "pods")

Doc = dict[str, Any]


def _items(doc: Doc | None) -> list[Doc]:
    return list((doc or {}).get("items") or [])


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def time_since(value: str | None, *, now: datetime | None = None) -> str:
    """Coarse age (`3d`, `5h`, `2mo`) for a Kubernetes creation timestamp."""

    if not value:
        return "-"
    now = now or datetime.now(timezone.utc)
    seconds = math.floor((now - parse_timestamp(value)).total_seconds())
    for unit_seconds, suffix in ((31536000, "y"), (2592000, "mo"), (86400, "d"), (3600, "h")):
        interval = seconds / unit_seconds
        if interval > 1:
            return f"{math.floor(interval)}{suffix}"
    return f"{math.floor(seconds / 60)}m"


def pv_filesystem(spec: Doc) -> str:
    for source in ("csi", "awsElasticBlockStore", "gcePersistentDisk", "azureDisk"):
        fs_type = (spec.get(source) or {}).get("fsType")
        if fs_type:
            return fs_type
    for source in ("nfs", "glusterfs", "hostPath"):
        if spec.get(source):
            return source
    return "Unknown"


def _claims_by_volume(pod: Doc) -> dict[str, str]:
    claims: dict[str, str] = {}
    for volume in pod.get("spec", {}).get("volumes") or []:
        claim = (volume.get("persistentVolumeClaim") or {}).get("claimName")
        if claim:
            claims[volume["name"]] = claim
    return claims


def _container_mounts(pod: Doc) -> Iterable[Doc]:
    for container in pod.get("spec", {}).get("containers") or []:
        yield from container.get("volumeMounts") or []


def pods_with_mounts(pods: Doc, pvcs: Doc | None) -> list[Doc]:
    storage: dict[str, str] = {
        p["metadata"]["name"]: p.get("spec", {}).get("storageClassName") or DEFAULT_STORAGE_CLASS
        for p in _items(pvcs)
    }
    out: list[Doc] = []
    for pod in _items(pods):
        claims = _claims_by_volume(pod)
        mounts = []
        for vm in _container_mounts(pod):
            if SERVICE_ACCOUNT_MOUNT in vm.get("mountPath", ""):
                continue
            claim = claims.get(vm["name"])
            mounts.append(
                {
                    "name": vm["name"],
                    "mountPath": vm["mountPath"],
                    "claimName": claim,
                    "storageClass": storage.get(claim) if claim else None,
                }
            )
        out.append(
            {
                "name": pod["metadata"]["name"],
                "status": pod.get("status", {}).get("phase"),
                "mounts": mounts,
            }
        )
    return out


def pvc_details(pvc: Doc) -> Doc:
    return {
        "name": pvc["metadata"]["name"],
        "status": pvc.get("status", {}).get("phase"),
        "capacity": (pvc.get("status", {}).get("capacity") or {}).get("storage"),
        "storageClass": pvc.get("spec", {}).get("storageClassName"),
        "accessModes": pvc.get("spec", {}).get("accessModes") or [],
    }


def _add_user(index: dict[str, list[str]], name: str, pod_name: str) -> None:
    users = index.setdefault(name, [])
    if pod_name not in users:
        users.append(pod_name)


def analyze_namespace(
    *,
    pvcs: Doc,
    pods: Doc,
    config_maps: Doc,
    secrets: Doc,
    pvs: Doc,
    now: datetime | None = None,
) -> Doc:
    """PvcAnalysis: who mounts what, and which claims/config objects look abandoned."""

    pv_info = {
        pv["metadata"]["name"]: (
            pv.get("spec", {}).get("persistentVolumeReclaimPolicy") or "Unknown",
            pv_filesystem(pv.get("spec", {})),
        )
        for pv in _items(pvs)
    }

    pvc_usage: dict[str, list[Doc]] = {}
    cm_usage: dict[str, list[str]] = {}
    secret_usage: dict[str, list[str]] = {}

    for pod in _items(pods):
        pod_name = pod["metadata"]["name"]
        for volume in pod.get("spec", {}).get("volumes") or []:
            if (volume.get("configMap") or {}).get("name"):
                _add_user(cm_usage, volume["configMap"]["name"], pod_name)
            if (volume.get("secret") or {}).get("secretName"):
                _add_user(secret_usage, volume["secret"]["secretName"], pod_name)
            for source in (volume.get("projected") or {}).get("sources") or []:
                if (source.get("secret") or {}).get("name"):
                    _add_user(secret_usage, source["secret"]["name"], pod_name)
                if (source.get("configMap") or {}).get("name"):
                    _add_user(cm_usage, source["configMap"]["name"], pod_name)

        claims = _claims_by_volume(pod)
        for vm in _container_mounts(pod):
            claim = claims.get(vm["name"])
            if claim:
                pvc_usage.setdefault(claim, []).append(
                    {"podName": pod_name, "mountPath": vm["mountPath"]}
                )

    pvc_rows = []
    for pvc in _items(pvcs):
        name = pvc["metadata"]["name"]
        spec = pvc.get("spec", {})
        status = pvc.get("status", {})
        usage = pvc_usage.get(name, [])
        mounted_by = list(dict.fromkeys(u["podName"] for u in usage))
        access_modes = spec.get("accessModes") or []
        volume_name = spec.get("volumeName") or ""
        policy, fs_type = pv_info.get(volume_name, ("Unknown", "Unknown"))
        pvc_rows.append(
            {
                "name": name,
                "status": status.get("phase"),
                "capacity": (status.get("capacity") or {}).get("storage") or "N/A",
                "storageClass": spec.get("storageClassName") or DEFAULT_STORAGE_CLASS,
                "accessModes": access_modes,
                "volumemode": spec.get("volumeMode"),
                "mountedBy": mounted_by,
                "scanCandidate": usage[0] if usage else None,
                "isZombie": status.get("phase") == "Bound" and not mounted_by,
                "rwoRisk": "ReadWriteOnce" in access_modes and len(mounted_by) > 1,
                "age": time_since(pvc["metadata"].get("creationTimestamp"), now=now),
                "volumeName": volume_name,
                "reclaimPolicy": policy,
                "fileSystem": fs_type,
                "conditions": [c.get("type") for c in status.get("conditions") or []],
            }
        )

    cm_rows = [
        {
            "name": cm["metadata"]["name"],
            "keys": len(cm.get("data") or {}),
            "mountedBy": cm_usage.get(cm["metadata"]["name"], []),
            "isUnused": not cm_usage.get(cm["metadata"]["name"]),
            "age": time_since(cm["metadata"].get("creationTimestamp"), now=now),
        }
        for cm in _items(config_maps)
    ]
    secret_rows = [
        {
            "name": s["metadata"]["name"],
            "type": s.get("type"),
            "keys": len(s.get("data") or {}),
            "mountedBy": secret_usage.get(s["metadata"]["name"], []),
            "isUnused": not secret_usage.get(s["metadata"]["name"]),
            "age": time_since(s["metadata"].get("creationTimestamp"), now=now),
        }
        for s in _items(secrets)
    ]
    return {"pvcs": pvc_rows, "configMaps": cm_rows, "secrets": secret_rows}


def quota_entries(quotas: Doc) -> list[Doc]:
    out = []
    for quota in _items(quotas):
        hard = quota.get("status", {}).get("hard") or {}
        used = quota.get("status", {}).get("used") or {}
        for key, hard_value in hard.items():
            if not any(k in key for k in QUOTA_KEYS):
                continue
            kind = "cpu" if "cpu" in key else "memory" if "memory" in key else "other"
            out.append(
                {
                    "name": f"{quota['metadata']['name']} - {key}",
                    "used": used.get(key),
                    "hard": hard_value,
                    "type": kind,
                    "isCritical": used.get(key) == hard_value,
                }
            )
    return out


def is_infra_issue(message: str) -> bool:
    return any(pattern in message for pattern in INFRA_PATTERNS)


def summarize_events(pod_name: str, events: Doc) -> tuple[list[Doc], list[Doc]]:
    """Return `(events, infra_issues)` for one pending pod."""

    recent: list[Doc] = []
    issues: list[Doc] = []
    for event in _items(events):
        message = event.get("message") or ""
        if is_infra_issue(message):
            issues.append(
                {"pod": pod_name, "message": f"INFRA ISSUE: {message}", "severity": "critical"}
            )
        recent.append(
            {"reason": event.get("reason"), "message": event.get("message"), "count": event.get("count")}
        )
    return recent, issues


def _table_rows(output: str) -> list[list[str]]:
    return [line.split() for line in output.splitlines() if line.strip()]


def parse_top_nodes(output: str) -> list[Doc]:
    return [
        {
            "name": parts[0],
            "cpuCores": parts[1] if len(parts) > 1 else None,
            "cpuPercent": parts[2] if len(parts) > 2 else None,
            "memoryBytes": parts[3] if len(parts) > 3 else None,
            "memoryPercent": parts[4] if len(parts) > 4 else None,
        }
        for parts in _table_rows(output)
    ]


def parse_top_pods(output: str) -> list[Doc]:
    return [
        {
            "name": parts[0],
            "cpu": parts[1] if len(parts) > 1 else "0",
            "memory": parts[2] if len(parts) > 2 else None,
        }
        for parts in _table_rows(output)
    ]


def cpu_millicores(value: str) -> float:
    value = value.strip()
    try:
        if value.endswith("m"):
            return float(value[:-1] or 0)
        return float(value) * 1000
    except ValueError:
        return 0.0


def idle_pods(pods: list[Doc], threshold: float) -> Doc:
    rows = [
        {**p, "cpuValue": cpu_millicores(p["cpu"]), "isIdle": cpu_millicores(p["cpu"]) <= threshold}
        for p in pods
    ]
    rows.sort(key=lambda r: r["cpuValue"])
    return {"pods": rows, "idleCount": sum(1 for r in rows if r["isIdle"]), "threshold": threshold}


def parse_ls(output: str) -> list[Doc]:
    """Parse `ls -la` (GNU or BusyBox) into file entries; `.` and `..` are dropped."""

    lines = output.split("\n")
    start = 1 if lines and lines[0].startswith("total") else 0
    files: list[Doc] = []
    for raw in lines[start:]:
        line = raw.strip()
        if not line or line.startswith("ls:"):
            continue
        parts = line.split()
        if len(parts) < 9:
            continue
        name = " ".join(parts[8:])
        if name in (".", ".."):
            continue
        files.append(
            {
                "name": name,
                "isDirectory": parts[0].startswith("d"),
                "size": parts[4],
                "lastModified": f"{parts[5]} {parts[6]} {parts[7]}",
                "permissions": parts[0],
            }
        )
    return files


def parse_df(output: str) -> Doc:
    """Usage from `df -hP <path>`; raises ValueError on unexpected output."""

    lines = output.strip().split("\n")
    if len(lines) < 2:
        raise ValueError("Command failed or no output")
    parts = lines[1].split()
    if len(parts) < 5:
        raise ValueError("Invalid df output format")
    return {"size": parts[1], "used": parts[2], "avail": parts[3], "percentage": parts[4]}


def pods_using_storage_class(namespace: str, pvcs: Doc, pods: Doc, storage_class: str) -> list[Doc]:
    claims = {
        p["metadata"]["name"]
        for p in _items(pvcs)
        if (p.get("spec") or {}).get("storageClassName") == storage_class
    }
    if not claims:
        return []
    results = []
    for pod in _items(pods):
        for claim in _claims_by_volume(pod).values():
            if claim in claims:
                results.append(
                    {
                        "namespace": namespace,
                        "podName": pod["metadata"]["name"],
                        "pvcName": claim,
                        "status": pod.get("status", {}).get("phase"),
                        "storageClass": storage_class,
                    }
                )
    return results


def debug_pod_manifest(
    *, namespace: str, pod_name: str, pvc_name: str, image: str, ttl_seconds: int
) -> Doc:
    # The container exits after `ttl_seconds`; restartPolicy Never keeps it down.
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {
            "name": pod_name,
            "namespace": namespace,
            "labels": {"app": "pvc-debug-inspector"},
        },
        "spec": {
            "containers": [
                {
                    "name": "debugger",
                    "image": image,
                    "command": ["/bin/sh", "-c", f"sleep {ttl_seconds}"],
                    "volumeMounts": [{"name": "target-pvc", "mountPath": DEBUG_MOUNT_PATH}],
                }
            ],
            "volumes": [{"name": "target-pvc", "persistentVolumeClaim": {"claimName": pvc_name}}],
            "restartPolicy": "Never",
        },
    }
