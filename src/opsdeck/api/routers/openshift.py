"""
opsdeck.api.routers.openshift

Cluster diagnostics endpoints (`/api/oc/*`).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from opsdeck.api.deps import oc_client_dep
from opsdeck.clients.openshift import OcClient
from opsdeck.services.openshift_service import OpenShiftService

router = APIRouter(prefix="/api/oc", tags=["openshift"])


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(_Body):
    command: str = ""


class PvcUsageRequest(_Body):
    namespace: str
    pod_name: str
    mount_path: str


class DeleteFileRequest(_Body):
    namespace: str
    pod: str
    path: str


class InspectPvcRequest(_Body):
    namespace: str
    pvc_name: str


def _service(oc: OcClient = Depends(oc_client_dep)) -> OpenShiftService:
    return OpenShiftService(oc=oc)


@router.post("/login")
async def login(body: LoginRequest, svc: OpenShiftService = Depends(_service)) -> dict[str, Any]:
    return await svc.login(body.command)


@router.get("/projects")
async def projects(svc: OpenShiftService = Depends(_service)) -> dict[str, Any]:
    return await svc.projects()


@router.get("/user-info")
async def user_info(svc: OpenShiftService = Depends(_service)) -> dict[str, Any]:
    return await svc.user_info()


@router.get("/pods")
async def pods(namespace: str, svc: OpenShiftService = Depends(_service)) -> dict[str, Any]:
    return await svc.pods(namespace)


@router.get("/pvc")
async def pvc(namespace: str, name: str, svc: OpenShiftService = Depends(_service)) -> dict[str, Any]:
    return await svc.pvc(namespace, name)


@router.get("/pvcs")
async def pvcs(namespace: str, svc: OpenShiftService = Depends(_service)) -> dict[str, Any]:
    return await svc.pvc_analysis(namespace)


@router.post("/pvc-usage")
async def pvc_usage(body: PvcUsageRequest, svc: OpenShiftService = Depends(_service)) -> dict[str, Any]:
    return await svc.pvc_usage(body.namespace, body.pod_name, body.mount_path)


@router.get("/doctor")
async def doctor(namespace: str, svc: OpenShiftService = Depends(_service)) -> dict[str, Any]:
    return await svc.doctor(namespace)


@router.get("/infra-analysis")
async def infra_analysis(namespace: str, svc: OpenShiftService = Depends(_service)) -> dict[str, Any]:
    return await svc.infra_analysis(namespace)


@router.get("/idle-pods")
async def idle_pods(
    namespace: str, threshold: float = 10, svc: OpenShiftService = Depends(_service)
) -> dict[str, Any]:
    return await svc.idle_pods(namespace, threshold)


@router.get("/files")
async def files(
    namespace: str, pod: str, path: str = "/", svc: OpenShiftService = Depends(_service)
) -> dict[str, Any]:
    return await svc.list_files(namespace, pod, path)


@router.get("/read")
async def read_file(
    namespace: str,
    pod: str,
    path: str,
    download: bool = False,
    svc: OpenShiftService = Depends(_service),
) -> Response:
    content = await svc.read_file(namespace, pod, path)
    headers = {}
    if download:
        filename = path.rstrip("/").rsplit("/", 1)[-1] or "download"
        headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return Response(content=content, media_type="application/octet-stream", headers=headers)


@router.post("/delete-file")
async def delete_file(body: DeleteFileRequest, svc: OpenShiftService = Depends(_service)) -> dict[str, Any]:
    return await svc.delete_file(body.namespace, body.pod, body.path)


@router.post("/inspect-pvc")
async def inspect_pvc(body: InspectPvcRequest, svc: OpenShiftService = Depends(_service)) -> dict[str, Any]:
    return await svc.inspect_pvc(body.namespace, body.pvc_name)


@router.get("/search-sc")
async def search_sc(sc: str, svc: OpenShiftService = Depends(_service)) -> dict[str, Any]:
    return await svc.search_storage_class(sc)


@router.get("/search-sc-target")
async def search_sc_target(
    project: str, sc: str, svc: OpenShiftService = Depends(_service)
) -> dict[str, Any]:
    return await svc.search_storage_class_in(project, sc)
