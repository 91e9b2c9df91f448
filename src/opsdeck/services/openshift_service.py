"""
opsdeck.services.openshift_service

Cluster diagnostics behind `/api/oc/*`.

Responsibilities:
- Session checks (login, whoami, role probing).
- Namespace storage analysis, doctor report, resource usage and idle pods.
- In-pod file browsing through `oc exec` and debug pods.
"""

from __future__ import annotations

import asyncio
from typing import Any

from opsdeck.clients.openshift import OcClient
from opsdeck.errors import InvalidRequest, NotAuthenticated, UpstreamError
from opsdeck.observability.logging import get_logger
from opsdeck.openshift import analysis

log = get_logger(__name__)

NOT_LOGGED_IN = "Not logged in to the cluster. Please log in first."
NODE_METRICS_DENIED = "Permission denied: node metrics require cluster-reader access."

# (role, verb, resource), checked in order; the first allowed check wins.
_ROLE_CHECKS = (
    ("Cluster Admin", "*", "*"),
    ("Cluster Reader", "list", "nodes"),
    ("Storage Viewer", "list", "persistentvolumes"),
)

_PROTECTED_PATHS = frozenset({"", "/", "."})


class OpenShiftService:
    def __init__(self, *, oc: OcClient) -> None:
        self._oc = oc

    async def login(self, command: str) -> dict[str, Any]:
        parts = (command or "").split()
        if parts[:2] != ["oc", "login"]:
            raise InvalidRequest("Command must start with 'oc login'")
        try:
            output = await self._oc.login(parts[2:])
        except UpstreamError as e:
            raise NotAuthenticated(e.message) from e
        log.info("oc_login_succeeded")
        return {"success": True, "message": output}

    async def _require_login(self) -> str:
        try:
            return await self._oc.whoami()
        except UpstreamError as e:
            raise NotAuthenticated(NOT_LOGGED_IN, details=e.message) from e

    async def projects(self) -> dict[str, Any]:
        await self._require_login()
        return {"projects": await self._oc.projects()}

    async def _allowed(self, verb: str, resource: str) -> bool:
        try:
            return (await self._oc.can_i(verb, resource)).strip().lower() == "yes"
        except UpstreamError:
            # `oc auth can-i` exits non-zero for "no".
            return False

    async def user_info(self) -> dict[str, Any]:
        username = await self._require_login()
        checks = await asyncio.gather(*(self._allowed(verb, res) for _, verb, res in _ROLE_CHECKS))

        role = "Project User"
        for (name, _, _), allowed in zip(_ROLE_CHECKS, checks):
            if allowed:
                role = name
                break
        permissions = {
            "clusterAdmin": checks[0],
            "listNodes": checks[1],
            "listPersistentVolumes": checks[2],
        }
        debug = [
            f"can-i {verb} {res}: {'yes' if ok else 'no'}"
            for (_, verb, res), ok in zip(_ROLE_CHECKS, checks)
        ]
        return {"username": username, "role": role, "permissions": permissions, "debug": debug}

    async def pods(self, namespace: str) -> dict[str, Any]:
        pods, pvcs = await asyncio.gather(self._oc.pods(namespace), self._oc.pvcs(namespace))
        return {"pods": analysis.pods_with_mounts(pods, pvcs)}

    async def pvc(self, namespace: str, name: str) -> dict[str, Any]:
        return analysis.pvc_details(await self._oc.pvc(namespace, name))

    async def pvc_analysis(self, namespace: str) -> dict[str, Any]:
        pvcs, pods, config_maps, secrets, pvs = await asyncio.gather(
            self._oc.get_json_or_empty(["get", "pvc", "-n", namespace]),
            self._oc.get_json_or_empty(["get", "pods", "-n", namespace]),
            self._oc.get_json_or_empty(["get", "configmaps", "-n", namespace]),
            self._oc.get_json_or_empty(["get", "secrets", "-n", namespace]),
            self._oc.get_json_or_empty(["get", "pv"]),
        )
        return analysis.analyze_namespace(
            pvcs=pvcs, pods=pods, config_maps=config_maps, secrets=secrets, pvs=pvs
        )

    async def pvc_usage(self, namespace: str, pod: str, mount_path: str) -> dict[str, Any]:
        try:
            output = await self._oc.exec(namespace, pod, ["df", "-hP", mount_path])
            return {"usage": analysis.parse_df(output)}
        except (UpstreamError, ValueError) as e:
            message = e.message if isinstance(e, UpstreamError) else str(e)
            return {"usage": None, "error": message}

    async def doctor(self, namespace: str) -> dict[str, Any]:
        quotas, pending = await asyncio.gather(
            self._oc.get_json_or_empty(["get", "resourcequota", "-n", namespace]),
            self._oc.pending_pods(namespace),
        )
        pending_items = list(pending.get("items") or [])
        events = await asyncio.gather(
            *(
                self._oc.pod_events(namespace, p["metadata"]["name"], p["metadata"].get("uid", ""))
                for p in pending_items
            )
        )

        pending_pods: list[dict[str, Any]] = []
        infra_issues: list[dict[str, Any]] = []
        for pod, pod_events in zip(pending_items, events):
            name = pod["metadata"]["name"]
            recent, issues = analysis.summarize_events(name, pod_events)
            infra_issues.extend(issues)
            pending_pods.append(
                {
                    "name": name,
                    "age": analysis.time_since(pod["metadata"].get("creationTimestamp")),
                    "events": recent,
                }
            )
        return {
            "quotas": analysis.quota_entries(quotas),
            "pendingPods": pending_pods,
            "infraIssues": infra_issues,
        }

    async def infra_analysis(self, namespace: str) -> dict[str, Any]:
        result: dict[str, Any] = {"nodes": [], "pods": [], "nodeError": None, "podError": None}
        try:
            result["nodes"] = analysis.parse_top_nodes(await self._oc.top_nodes())
        except UpstreamError as e:
            log.warning("oc_top_nodes_failed", error=e.message)
            result["nodeError"] = NODE_METRICS_DENIED
        try:
            result["pods"] = analysis.parse_top_pods(await self._oc.top_pods(namespace))
        except UpstreamError as e:
            result["podError"] = e.message
        return result

    async def idle_pods(self, namespace: str, threshold: float) -> dict[str, Any]:
        pods = analysis.parse_top_pods(await self._oc.top_pods(namespace))
        return analysis.idle_pods(pods, threshold)

    async def list_files(self, namespace: str, pod: str, path: str) -> dict[str, Any]:
        return {"path": path, "files": await self._oc.list_files(namespace, pod, path)}

    async def read_file(self, namespace: str, pod: str, path: str) -> bytes:
        return await self._oc.read_file(namespace, pod, path)

    async def delete_file(self, namespace: str, pod: str, path: str) -> dict[str, Any]:
        if path.strip() in _PROTECTED_PATHS:
            raise InvalidRequest("Refusing to delete the root or an empty path")
        await self._oc.delete_path(namespace, pod, path)
        log.info("oc_path_deleted", namespace=namespace, pod=pod, path=path)
        return {"success": True}

    async def inspect_pvc(self, namespace: str, pvc_name: str) -> dict[str, Any]:
        pod_name = await self._oc.create_debug_pod(namespace, pvc_name)
        return {"success": True, "podName": pod_name, "mountPath": analysis.DEBUG_MOUNT_PATH}

    async def search_storage_class(self, storage_class: str) -> dict[str, Any]:
        return {"results": await self._oc.pods_by_storage_class(storage_class)}

    async def search_storage_class_in(self, project: str, storage_class: str) -> dict[str, Any]:
        return {"results": await self._oc.pods_by_storage_class_in(project, storage_class)}
