"""
opsdeck.clients.openshift

`oc` CLI client.

Responsibilities:
- Run `oc` as an argument vector (no shell) with a timeout.
- Raise `UpstreamError` with stderr on a non-zero exit.
- Offer the typed calls the diagnostics endpoints use (JSON documents, raw bytes).

The process runner is injectable so tests can answer commands from a table.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from opsdeck.errors import UpstreamError
from opsdeck.observability.logging import get_logger
from opsdeck.openshift import analysis
from opsdeck.settings import Settings

log = get_logger(__name__)

# (args, stdin) -> stdout bytes
OcRunner = Callable[[Sequence[str], bytes | None], Awaitable[bytes]]

_EMPTY_LIST: dict[str, Any] = {"items": []}


def subprocess_runner(binary: str, *, timeout: float, max_output: int) -> OcRunner:
    async def run(args: Sequence[str], stdin: bytes | None = None) -> bytes:
        log.info("oc_exec", args=list(args[:3]))
        try:
            proc = await asyncio.create_subprocess_exec(
                binary,
                *args,
                stdin=asyncio.subprocess.PIPE if stdin is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=max_output,
            )
        except FileNotFoundError as e:
            raise UpstreamError(f"oc binary not found: {binary}", status_code=500) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(stdin), timeout=timeout)
        except TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise UpstreamError(f"oc {args[0] if args else ''} timed out", status_code=500) from e

        if proc.returncode != 0:
            message = stderr.decode(errors="replace").strip() or f"oc exited with {proc.returncode}"
            raise UpstreamError(message, status_code=500)
        if len(stdout) > max_output:
            raise UpstreamError("oc output exceeds the configured limit", status_code=500)
        return stdout

    return run


class OcClient:
    def __init__(self, runner: OcRunner, *, settings: Settings) -> None:
        self._run = runner
        self._settings = settings

    async def run(self, args: Sequence[str], *, stdin: bytes | None = None) -> str:
        out = await self._run(list(args), stdin)
        return out.decode(errors="replace").strip()

    async def run_bytes(self, args: Sequence[str]) -> bytes:
        return await self._run(list(args), None)

    async def get_json(self, args: Sequence[str]) -> dict[str, Any]:
        return json.loads(await self.run([*args, "-o", "json"]))

    async def get_json_or_empty(self, args: Sequence[str]) -> dict[str, Any]:
        """Like `get_json`, but permission/CLI failures degrade to an empty list."""

        try:
            out = await self.run([*args, "-o", "json"])
        except UpstreamError as e:
            log.warning("oc_list_failed", args=list(args[:2]), error=e.message)
            return dict(_EMPTY_LIST)
        if not out.startswith("{"):
            return dict(_EMPTY_LIST)
        return json.loads(out)

    # --- session ----------------------------------------------------------

    async def login(self, args: Sequence[str]) -> str:
        return await self.run(["login", *args])

    async def whoami(self) -> str:
        return await self.run(["whoami"])

    async def can_i(self, verb: str, resource: str) -> str:
        return await self.run(["auth", "can-i", verb, resource])

    async def projects(self) -> list[str]:
        out = await self.run(["get", "projects", "-o", "jsonpath={.items[*].metadata.name}"])
        return [p for p in out.strip('"').split(" ") if p]

    # --- workloads & storage ---------------------------------------------

    async def pods(self, namespace: str) -> dict[str, Any]:
        return await self.get_json(["get", "pods", "-n", namespace])

    async def pvcs(self, namespace: str) -> dict[str, Any]:
        return await self.get_json_or_empty(["get", "pvc", "-n", namespace])

    async def pvc(self, namespace: str, name: str) -> dict[str, Any]:
        return await self.get_json(["get", "pvc", name, "-n", namespace])

    async def pending_pods(self, namespace: str) -> dict[str, Any]:
        return await self.get_json_or_empty(
            ["get", "pods", "-n", namespace, "--field-selector=status.phase=Pending"]
        )

    async def pod_events(self, namespace: str, name: str, uid: str) -> dict[str, Any]:
        return await self.get_json_or_empty(
            [
                "get",
                "events",
                "-n",
                namespace,
                f"--field-selector=involvedObject.name={name},involvedObject.uid={uid}",
                "--sort-by=.lastTimestamp",
            ]
        )

    async def top_nodes(self) -> str:
        return await self.run(["adm", "top", "nodes", "--no-headers"])

    async def top_pods(self, namespace: str) -> str:
        return await self.run(["adm", "top", "pods", "-n", namespace, "--no-headers", "--sort-by=cpu"])

    # --- in-pod file access ----------------------------------------------

    async def exec(self, namespace: str, pod: str, command: Sequence[str]) -> str:
        return await self.run(["exec", pod, "-n", namespace, "--", *command])

    async def list_files(self, namespace: str, pod: str, path: str) -> list[dict[str, Any]]:
        return analysis.parse_ls(await self.exec(namespace, pod, ["ls", "-la", path]))

    async def read_file(self, namespace: str, pod: str, path: str) -> bytes:
        return await self.run_bytes(["exec", pod, "-n", namespace, "--", "cat", path])

    async def delete_path(self, namespace: str, pod: str, path: str) -> None:
        await self.exec(namespace, pod, ["rm", "-rf", path])

    async def create_debug_pod(self, namespace: str, pvc_name: str) -> str:
        pod_name = f"debug-k-{pvc_name[:40]}-{int(time.time() * 1000)}".lower()
        manifest = analysis.debug_pod_manifest(
            namespace=namespace,
            pod_name=pod_name,
            pvc_name=pvc_name,
            image=self._settings.debug_pod_image,
            ttl_seconds=self._settings.debug_pod_ttl_seconds,
        )
        await self.run(["apply", "-f", "-"], stdin=json.dumps(manifest).encode())
        return pod_name

    # --- storage class search --------------------------------------------

    async def pods_by_storage_class_in(self, namespace: str, storage_class: str) -> list[dict[str, Any]]:
        pvcs = await self.get_json_or_empty(["get", "pvc", "-n", namespace])
        if not any(
            (p.get("spec") or {}).get("storageClassName") == storage_class
            for p in pvcs.get("items") or []
        ):
            return []
        pods = await self.get_json_or_empty(["get", "pods", "-n", namespace])
        return analysis.pods_using_storage_class(namespace, pvcs, pods, storage_class)

    async def pods_by_storage_class(self, storage_class: str) -> list[dict[str, Any]]:
        namespaces = await self.projects()
        found = await asyncio.gather(
            *(self.pods_by_storage_class_in(ns, storage_class) for ns in namespaces),
            return_exceptions=True,
        )
        results: list[dict[str, Any]] = []
        for ns, rows in zip(namespaces, found):
            if isinstance(rows, BaseException):
                # Terminating or forbidden namespaces are skipped.
                log.warning("oc_search_namespace_failed", namespace=ns, error=str(rows))
                continue
            results.extend(rows)
        return results
