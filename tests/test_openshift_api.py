"""
tests.test_openshift_api

`/api/oc/*` endpoints driven by a scripted `oc` runner.
"""

from __future__ import annotations

import json

import httpx
import pytest
from fastapi import FastAPI

from fakes import FakeOc
from opsdeck.api.deps import oc_runner_dep
from opsdeck.errors import UpstreamError
from opsdeck.services.openshift_service import NODE_METRICS_DENIED, NOT_LOGGED_IN


@pytest.fixture
def oc(app: FastAPI) -> FakeOc:
    fake = FakeOc()
    app.dependency_overrides[oc_runner_dep] = lambda: fake
    return fake


def _denied(message: str = "no") -> UpstreamError:
    return UpstreamError(message, status_code=500)


def _pod(name: str, claim: str | None = None, phase: str = "Running") -> dict:
    volumes = [{"name": "data", "persistentVolumeClaim": {"claimName": claim}}] if claim else []
    mounts = [{"name": "data", "mountPath": "/data"}] if claim else []
    return {
        "metadata": {"name": name, "uid": f"uid-{name}", "creationTimestamp": "2024-01-01T00:00:00Z"},
        "status": {"phase": phase},
        "spec": {"volumes": volumes, "containers": [{"volumeMounts": mounts}]},
    }


def _pvc(name: str, sc: str = "gp3") -> dict:
    return {
        "metadata": {"name": name},
        "spec": {"storageClassName": sc, "accessModes": ["ReadWriteOnce"]},
        "status": {"phase": "Bound", "capacity": {"storage": "5Gi"}},
    }


# --- session ---------------------------------------------------------------


@pytest.mark.asyncio
async def test_login_passes_arguments_without_a_shell(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("login", reply="Logged into https://api.cluster:6443 as dev")

    r = await client.post("/api/oc/login", json={"command": "oc login --token=sha256~abc --server=https://api.cluster:6443"})

    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "Logged into https://api.cluster:6443 as dev"}
    assert oc.calls[0][0] == ["login", "--token=sha256~abc", "--server=https://api.cluster:6443"]


@pytest.mark.asyncio
async def test_login_rejects_other_commands(client: httpx.AsyncClient, oc: FakeOc) -> None:
    r = await client.post("/api/oc/login", json={"command": "oc delete project prod"})
    assert r.status_code == 400
    assert oc.calls == []


@pytest.mark.asyncio
async def test_login_failure_is_unauthorized(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("login", reply=_denied("error: The token provided is invalid or expired"))

    r = await client.post("/api/oc/login", json={"command": "oc login --token=bad"})

    assert r.status_code == 401
    assert r.json()["error"] == "error: The token provided is invalid or expired"


@pytest.mark.asyncio
async def test_projects_require_a_session(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("whoami", reply=_denied("error: You must be logged in to the server (Unauthorized)"))

    r = await client.get("/api/oc/projects")

    assert r.status_code == 401
    assert r.json()["error"] == NOT_LOGGED_IN


@pytest.mark.asyncio
async def test_projects(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("whoami", reply="dev\n").on("get", "projects", reply="team-a team-b")

    r = await client.get("/api/oc/projects")

    assert r.json() == {"projects": ["team-a", "team-b"]}


@pytest.mark.asyncio
async def test_user_info_picks_the_strongest_role(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("whoami", reply="auditor")
    oc.on("auth", "can-i", "*", "*", reply=_denied())
    oc.on("auth", "can-i", "list", "nodes", reply="yes")
    oc.on("auth", "can-i", "list", "persistentvolumes", reply="yes")

    body = (await client.get("/api/oc/user-info")).json()

    assert body["username"] == "auditor"
    assert body["role"] == "Cluster Reader"
    assert body["permissions"] == {"clusterAdmin": False, "listNodes": True, "listPersistentVolumes": True}
    assert body["debug"][0] == "can-i * *: no"


@pytest.mark.asyncio
async def test_user_info_defaults_to_project_user(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("whoami", reply="dev").on("auth", "can-i", reply="no")

    body = (await client.get("/api/oc/user-info")).json()

    assert body["role"] == "Project User"


# --- workloads & storage ---------------------------------------------------


@pytest.mark.asyncio
async def test_pods_with_storage_classes(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("get", "pods", "-n", "ns1", reply={"items": [_pod("api-1", "data-pvc")]})
    oc.on("get", "pvc", "-n", "ns1", reply={"items": [_pvc("data-pvc", "fast")]})

    body = (await client.get("/api/oc/pods", params={"namespace": "ns1"})).json()

    assert body["pods"][0]["mounts"][0]["storageClass"] == "fast"


@pytest.mark.asyncio
async def test_pvc_details(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("get", "pvc", "data-pvc", reply=_pvc("data-pvc"))

    body = (await client.get("/api/oc/pvc", params={"namespace": "ns1", "name": "data-pvc"})).json()

    assert body == {
        "name": "data-pvc",
        "status": "Bound",
        "capacity": "5Gi",
        "storageClass": "gp3",
        "accessModes": ["ReadWriteOnce"],
    }


@pytest.mark.asyncio
async def test_pvc_analysis_tolerates_forbidden_lists(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("get", "pvc", reply={"items": [_pvc("orphan")]})
    oc.on("get", "pods", reply={"items": []})
    oc.on("get", "configmaps", reply={"items": []})
    oc.on("get", "secrets", reply=_denied("Forbidden"))
    oc.on("get", "pv", reply=_denied("Forbidden"))

    body = (await client.get("/api/oc/pvcs", params={"namespace": "ns1"})).json()

    assert body["pvcs"][0]["isZombie"] is True
    assert body["secrets"] == []


@pytest.mark.asyncio
async def test_pvc_usage(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("exec", "api-1", reply="Filesystem Size Used Avail Capacity Mounted on\n/dev/x 10G 1G 9G 10% /data\n")

    body = (
        await client.post("/api/oc/pvc-usage", json={"namespace": "ns1", "podName": "api-1", "mountPath": "/data"})
    ).json()

    assert body == {"usage": {"size": "10G", "used": "1G", "avail": "9G", "percentage": "10%"}}
    assert oc.calls[0][0] == ["exec", "api-1", "-n", "ns1", "--", "df", "-hP", "/data"]


@pytest.mark.asyncio
async def test_pvc_usage_failure_is_reported_not_raised(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("exec", reply=_denied("container not found"))

    r = await client.post("/api/oc/pvc-usage", json={"namespace": "ns1", "podName": "x", "mountPath": "/data"})

    assert r.status_code == 200
    assert r.json() == {"usage": None, "error": "container not found"}


@pytest.mark.asyncio
async def test_doctor(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on(
        "get",
        "resourcequota",
        reply={
            "items": [
                {
                    "metadata": {"name": "q"},
                    "status": {"hard": {"pods": "10"}, "used": {"pods": "10"}},
                }
            ]
        },
    )
    oc.on("get", "pods", "-n", "ns1", "--field-selector=status.phase=Pending", reply={"items": [_pod("stuck", phase="Pending")]})
    oc.on(
        "get",
        "events",
        reply={"items": [{"reason": "Failed", "message": "PLEG is not healthy", "count": 3}]},
    )

    body = (await client.get("/api/oc/doctor", params={"namespace": "ns1"})).json()

    assert body["quotas"][0]["isCritical"] is True
    assert body["pendingPods"][0]["name"] == "stuck"
    assert body["pendingPods"][0]["events"] == [{"reason": "Failed", "message": "PLEG is not healthy", "count": 3}]
    assert body["infraIssues"][0]["message"] == "INFRA ISSUE: PLEG is not healthy"
    events_call = next(args for args, _ in oc.calls if args[:2] == ["get", "events"])
    assert "--field-selector=involvedObject.name=stuck,involvedObject.uid=uid-stuck" in events_call


@pytest.mark.asyncio
async def test_infra_analysis_reports_denied_node_metrics(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("adm", "top", "nodes", reply=_denied("Forbidden"))
    oc.on("adm", "top", "pods", reply="api-1 120m 256Mi\n")

    body = (await client.get("/api/oc/infra-analysis", params={"namespace": "ns1"})).json()

    assert body["nodes"] == []
    assert body["nodeError"] == NODE_METRICS_DENIED
    assert body["pods"] == [{"name": "api-1", "cpu": "120m", "memory": "256Mi"}]
    assert body["podError"] is None


@pytest.mark.asyncio
async def test_idle_pods_default_threshold(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("adm", "top", "pods", reply="busy 500m 1Gi\nquiet 3m 64Mi\n")

    body = (await client.get("/api/oc/idle-pods", params={"namespace": "ns1"})).json()

    assert body["threshold"] == 10
    assert body["idleCount"] == 1
    assert body["pods"][0]["name"] == "quiet"


# --- in-pod files ----------------------------------------------------------


@pytest.mark.asyncio
async def test_list_files(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("exec", reply="total 4\n-rw-r--r-- 1 app app 42 Jan 1 10:00 app.log\n")

    body = (await client.get("/api/oc/files", params={"namespace": "ns1", "pod": "api-1", "path": "/var/log"})).json()

    assert body["path"] == "/var/log"
    assert body["files"][0]["name"] == "app.log"
    assert oc.calls[0][0][-3:] == ["ls", "-la", "/var/log"]


@pytest.mark.asyncio
async def test_read_file_download(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("exec", reply=b"\x00binary\xff")

    r = await client.get(
        "/api/oc/read", params={"namespace": "ns1", "pod": "api-1", "path": "/data/dump.bin", "download": "true"}
    )

    assert r.content == b"\x00binary\xff"
    assert r.headers["content-disposition"] == 'attachment; filename="dump.bin"'


@pytest.mark.asyncio
async def test_delete_file_refuses_root(client: httpx.AsyncClient, oc: FakeOc) -> None:
    r = await client.post("/api/oc/delete-file", json={"namespace": "ns1", "pod": "api-1", "path": " / "})
    assert r.status_code == 400
    assert oc.calls == []


@pytest.mark.asyncio
async def test_delete_file(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("exec", reply="")

    r = await client.post("/api/oc/delete-file", json={"namespace": "ns1", "pod": "api-1", "path": "/data/old.log"})

    assert r.json() == {"success": True}
    assert oc.calls[0][0] == ["exec", "api-1", "-n", "ns1", "--", "rm", "-rf", "/data/old.log"]


@pytest.mark.asyncio
async def test_inspect_pvc_applies_debug_pod_from_stdin(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("apply", reply="pod/debug created")

    body = (await client.post("/api/oc/inspect-pvc", json={"namespace": "ns1", "pvcName": "Data-PVC"})).json()

    assert body["success"] is True
    assert body["podName"].startswith("debug-k-data-pvc-")
    assert body["mountPath"] == "/mnt/data"
    args, stdin = oc.calls[0]
    assert args == ["apply", "-f", "-"]
    manifest = json.loads(stdin)
    assert manifest["metadata"]["namespace"] == "ns1"
    assert manifest["spec"]["volumes"][0]["persistentVolumeClaim"]["claimName"] == "Data-PVC"


# --- storage class search --------------------------------------------------


@pytest.mark.asyncio
async def test_search_storage_class_across_projects(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("get", "projects", reply="ns1 ns2")
    oc.on("get", "pvc", "-n", "ns1", reply={"items": [_pvc("fast-1", "fast")]})
    oc.on("get", "pvc", "-n", "ns2", reply=_denied("Forbidden"))
    oc.on("get", "pods", "-n", "ns1", reply={"items": [_pod("db-0", "fast-1")]})

    body = (await client.get("/api/oc/search-sc", params={"sc": "fast"})).json()

    assert body == {
        "results": [
            {"namespace": "ns1", "podName": "db-0", "pvcName": "fast-1", "status": "Running", "storageClass": "fast"}
        ]
    }


@pytest.mark.asyncio
async def test_search_storage_class_in_one_project(client: httpx.AsyncClient, oc: FakeOc) -> None:
    oc.on("get", "pvc", reply={"items": [_pvc("slow-1", "slow")]})

    body = (await client.get("/api/oc/search-sc-target", params={"project": "ns1", "sc": "fast"})).json()

    assert body == {"results": []}
    # No matching claim, so pods are never listed.
    assert all(args[:2] != ["get", "pods"] for args, _ in oc.calls)
