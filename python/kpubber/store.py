import asyncio
import copy
import json
import logging
import ssl
from typing import Optional, Protocol

import httpx
import kr8s
from kr8s.asyncio.objects import Node

from .errorhandling import NodeNotFoundError, StoreError
from .patching import PatchSet

logger = logging.getLogger("kpubber")

FIELD_MANAGER = "k8s.alekc.dev/kpubber"
SERVICEACCOUNT_PATH = "/var/run/secrets/kubernetes.io/serviceaccount"

# kr8s raises its own timeout and connection errors instead of httpx ones
TRANSPORT_ERRORS = (
    asyncio.TimeoutError,
    kr8s.APITimeoutError,
    kr8s.ConnectionClosedError,
    kr8s.ServerError,
    httpx.HTTPError,
    ssl.SSLError,
)

JSON_PATCH = "application/json-patch+json"
MERGE_PATCH = "application/merge-patch+json"


class NodeStore(Protocol):
    async def get_node(self, name: str) -> dict: ...

    async def patch_node(
        self, name: str, patch: PatchSet, field_manager: str = FIELD_MANAGER
    ) -> None: ...

    async def merge_patch_node(
        self, name: str, patch: dict, field_manager: str = FIELD_MANAGER
    ) -> None: ...

    async def patch_node_status(self, name: str, old: dict, new: dict) -> None: ...


def status_patch(old: dict, new: dict) -> Optional[dict]:
    """Merge patch carrying the status fields that differ between two nodes.

    Lists go out whole, a merge patch has no way to address single entries.
    The old resourceVersion rides along so the API server refuses the write
    when the node changed after it was read.
    """
    old_status = old.get("status") or {}
    new_status = new.get("status") or {}
    delta = {
        key: value
        for key, value in new_status.items()
        if old_status.get(key) != value
    }
    for key in old_status.keys() - new_status.keys():
        delta[key] = None
    if not delta:
        return None

    patch: dict = {"status": delta}
    resource_version = (old.get("metadata") or {}).get("resourceVersion")
    if resource_version:
        patch["metadata"] = {"resourceVersion": resource_version}
    return patch


class Kr8sNodeStore:
    def __init__(self, api, timeout: float = 30.0):
        self.api = api
        self.timeout = timeout

    async def get_node(self, name: str) -> dict:
        try:
            node = await asyncio.wait_for(
                Node.get(name, api=self.api), self.timeout
            )
        except kr8s.NotFoundError as ex:
            raise NodeNotFoundError(f"node {name} not found", ex)
        except TRANSPORT_ERRORS as ex:
            raise StoreError(f"cannot get node {name}: {ex}", ex)
        return copy.deepcopy(node.raw)

    async def patch_node(
        self, name: str, patch: PatchSet, field_manager: str = FIELD_MANAGER
    ) -> None:
        await self._patch(f"nodes/{name}", JSON_PATCH, patch.json(), field_manager)

    async def merge_patch_node(
        self, name: str, patch: dict, field_manager: str = FIELD_MANAGER
    ) -> None:
        await self._patch(
            f"nodes/{name}", MERGE_PATCH, json.dumps(patch).encode(), field_manager
        )

    async def patch_node_status(self, name: str, old: dict, new: dict) -> None:
        patch = status_patch(old, new)
        if patch is None:
            logger.debug(f"No status changes for node {name}")
            return
        await self._patch(
            f"nodes/{name}/status",
            MERGE_PATCH,
            json.dumps(patch).encode(),
            FIELD_MANAGER,
        )

    async def _patch(
        self, url: str, content_type: str, payload: bytes, field_manager: str
    ) -> None:
        async def call():
            async with self.api.call_api(
                "PATCH",
                version="v1",
                url=url,
                params={"fieldManager": field_manager},
                headers={"Content-Type": content_type},
                content=payload,
            ):
                pass

        try:
            await asyncio.wait_for(call(), self.timeout)
        except TRANSPORT_ERRORS as ex:
            raise StoreError(f"PATCH {url} failed: {ex}", ex)


async def connect(config) -> Kr8sNodeStore:
    if config.use_kubeconfig:
        logger.debug(f"Using kubeconfig {config.kubeconfig_path}")
        api = await kr8s.asyncio.api(kubeconfig=config.kubeconfig_path)
    else:
        logger.debug("Using in-cluster service account")
        api = await kr8s.asyncio.api(serviceaccount=SERVICEACCOUNT_PATH)
    return Kr8sNodeStore(api, timeout=config.api_timeout)
