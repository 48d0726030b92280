from .annotations import reconcile_annotations
from .config import Config
from .errorhandling import AnnotationPatchError, PublicIPError, StatusPatchError
from .externalip import reconcile_external_ip
from .logs import cycle_logger
from .publicip import PublicIPResolver
from .store import NodeStore


class CycleController:
    """One pass: resolve the public IP, then publish it on the node.

    Fatal errors (no public IP, node gone) propagate to the caller, write
    failures are logged and left for the next cycle.
    """

    def __init__(self, config: Config, store: NodeStore, resolver: PublicIPResolver):
        self.config = config
        self.store = store
        self.resolver = resolver
        self._in_flight = False

    async def run_cycle(self) -> None:
        log = cycle_logger(node_name=self.config.node_name)
        if self._in_flight:
            log.warning("previous run still in progress, skipping")
            return

        self._in_flight = True
        try:
            await self._reconcile(log)
        finally:
            self._in_flight = False

    async def _reconcile(self, log) -> None:
        log.debug("preparing to patch")
        try:
            ip = await self.resolver.resolve()
        except PublicIPError as ex:
            log.critical(f"cannot obtain public ip: {ex.details}")
            raise

        log = log.bind(public_ip=ip)
        log.debug("resolved public ip")

        try:
            await reconcile_annotations(
                self.store, self.config.node_name, self.config.keys, ip, log
            )
        except AnnotationPatchError as ex:
            log.error(f"cannot patch the node annotations: {ex.message}")
            return

        if not self.config.set_external_ip:
            return

        try:
            await reconcile_external_ip(self.store, self.config.node_name, ip, log)
        except StatusPatchError as ex:
            log.error(f"cannot patch node's external ip: {ex.message}")
