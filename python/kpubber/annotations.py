from typing import Sequence

from .errorhandling import AnnotationPatchError, KpubberError
from .logs import CycleLogger
from .models import IPAddress
from .patching import ANNOTATIONS_PATH, PatchSet, build_patch_set
from .store import FIELD_MANAGER, NodeStore


def stale_keys(annotations, keys: Sequence[str], ip: IPAddress) -> list[str]:
    current = annotations or {}
    return [key for key in dict.fromkeys(keys) if current.get(key) != ip]


def annotation_patch(annotations: dict, keys: Sequence[str], ip: IPAddress) -> PatchSet:
    """JSON patch bringing every key in `keys` to `ip`.

    Keys already holding `ip` are left out, missing ones are added.
    """
    return build_patch_set(
        ANNOTATIONS_PATH, stale_keys(annotations, keys, ip), ip, present=annotations
    )


def annotation_merge_patch(keys: Sequence[str], ip: IPAddress) -> dict:
    # Merges into whatever map exists by the time the patch lands
    return {"metadata": {"annotations": {key: str(ip) for key in keys}}}


async def reconcile_annotations(
    store: NodeStore,
    node_name: str,
    keys: Sequence[str],
    ip: IPAddress,
    log: CycleLogger,
) -> None:
    try:
        node = await store.get_node(node_name)
        annotations = node.get("metadata", {}).get("annotations")
        stale = stale_keys(annotations, keys, ip)
        if not stale:
            log.debug("annotations already up to date")
            return

        if annotations is None:
            # A JSON patch add on the whole map would wipe one created
            # concurrently by another writer
            patch = annotation_merge_patch(stale, ip)
            log.debug(f"creating annotations: {patch}")
            await store.merge_patch_node(node_name, patch, FIELD_MANAGER)
        else:
            patch_set = annotation_patch(annotations, keys, ip)
            log.debug(f"patching annotations: {patch_set.json().decode()}")
            await store.patch_node(node_name, patch_set, FIELD_MANAGER)
    except KpubberError as ex:
        raise AnnotationPatchError(ex.message, ex)

    log.info("patched annotations")
