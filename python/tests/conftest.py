import copy

import pytest

from kpubber.errorhandling import NodeNotFoundError
from kpubber.logs import cycle_logger


class FakeNodeStore:
    """In-memory stand-in for the cluster, records every write."""

    def __init__(self, node=None):
        self.node = node
        self.gets = 0
        self.patches = []
        self.status_patches = []
        self.merge_patches = []
        self.fail_get = None
        self.fail_patch = None
        self.fail_status = None

    async def get_node(self, name):
        self.gets += 1
        if self.fail_get is not None:
            raise self.fail_get
        if self.node is None or self.node["metadata"]["name"] != name:
            raise NodeNotFoundError(f"node {name} not found")
        return copy.deepcopy(self.node)

    async def patch_node(self, name, patch, field_manager):
        if self.fail_patch is not None:
            raise self.fail_patch
        self.patches.append((name, list(patch), field_manager))

    async def merge_patch_node(self, name, patch, field_manager):
        if self.fail_patch is not None:
            raise self.fail_patch
        self.merge_patches.append((name, patch, field_manager))

    async def patch_node_status(self, name, old, new):
        if self.fail_status is not None:
            raise self.fail_status
        self.status_patches.append((name, old, new))
        self.node = copy.deepcopy(new)


def make_node(name="node-1", annotations=None, addresses=None):
    metadata = {"name": name, "resourceVersion": "42"}
    if annotations is not None:
        metadata["annotations"] = annotations
    return {
        "apiVersion": "v1",
        "kind": "Node",
        "metadata": metadata,
        "status": {
            "addresses": addresses or [],
            "conditions": [{"type": "Ready", "status": "True"}],
        },
    }


@pytest.fixture
def log():
    return cycle_logger(node_name="node-1")

