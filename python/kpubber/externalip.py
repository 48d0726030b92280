import copy
from typing import NamedTuple, Sequence

from .errorhandling import KpubberError, NodeNotFoundError, StatusPatchError
from .logs import CycleLogger
from .models import EXTERNAL_IP, IPAddress, NodeAddress
from .store import NodeStore

UNCHANGED = "unchanged"
UPDATED = "updated"
APPENDED = "appended"


class AddressPlan(NamedTuple):
    action: str
    addresses: list[NodeAddress]


def plan_addresses(addresses: Sequence[NodeAddress], ip: IPAddress) -> AddressPlan:
    """Work out the node's address list with `ip` as its external address.

    The list has no key to patch entries by, so the result is always a
    complete new list. Only the first ExternalIP entry is ever touched.
    """
    new = list(addresses)
    for index, entry in enumerate(new):
        if entry.type != EXTERNAL_IP:
            continue
        if entry.address == ip:
            return AddressPlan(UNCHANGED, new)
        new[index] = entry._replace(address=str(ip))
        return AddressPlan(UPDATED, new)

    new.append(NodeAddress(EXTERNAL_IP, str(ip)))
    return AddressPlan(APPENDED, new)


async def reconcile_external_ip(
    store: NodeStore,
    node_name: str,
    ip: IPAddress,
    log: CycleLogger,
) -> AddressPlan:
    # Always read right before writing, the whole list goes back out
    try:
        node = await store.get_node(node_name)
    except NodeNotFoundError:
        log.critical("could not find the node")
        raise
    except KpubberError as ex:
        raise StatusPatchError(ex.message, ex)

    current = [
        NodeAddress.from_dict(raw)
        for raw in node.get("status", {}).get("addresses") or []
    ]
    plan = plan_addresses(current, ip)
    if plan.action == UNCHANGED:
        log.info("node's external ip is already set to its public ip, skipping update")
        return plan

    new_node = copy.deepcopy(node)
    new_node.setdefault("status", {})["addresses"] = [
        address.to_dict() for address in plan.addresses
    ]
    try:
        await store.patch_node_status(node_name, node, new_node)
    except KpubberError as ex:
        raise StatusPatchError(ex.message, ex)

    log.info(f"patched node's external ip ({plan.action})")
    return plan
