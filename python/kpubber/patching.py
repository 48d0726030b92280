import json
from typing import Any, Container, Iterable, NamedTuple, Optional

ANNOTATIONS_PATH = "/metadata/annotations"


class Patch(NamedTuple):
    op: str
    path: str
    value: Any

    def to_dict(self) -> dict:
        return {"op": self.op, "path": self.path, "value": self.value}


class PatchSet(list):
    def json(self) -> bytes:
        return json.dumps([patch.to_dict() for patch in self]).encode()


def escape_key(key: str) -> str:
    # http://jsonpatch.com, tilde has to go first
    return key.replace("~", "~0").replace("/", "~1")


def unescape_key(segment: str) -> str:
    return segment.replace("~1", "/").replace("~0", "~")


def build_patch_set(
    base_path: str,
    keys: Iterable[str],
    value: Any,
    present: Optional[Container[str]] = None,
) -> PatchSet:
    """One operation per key, in key order.

    Without `present` every operation is a replace. When the caller knows
    which keys already exist, missing ones are added instead, since the API
    server rejects a replace on a member that is not there.
    """
    patch_set = PatchSet()
    for key in keys:
        op = "replace" if present is None or key in present else "add"
        patch_set.append(Patch(op, f"{base_path}/{escape_key(key)}", value))
    return patch_set
