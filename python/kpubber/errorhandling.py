import logging
from typing import Optional, Any

logger = logging.getLogger("kpubber")

EXIT_CANNOT_OBTAIN_IP = 1
EXIT_CANNOT_FIND_NODE = 2
EXIT_INVALID_CONFIG = 3


class KpubberError(Exception):
    def __init__(
        self,
        message: Optional[str] = None,
        details: Any = None,
    ) -> None:
        logger.debug(message)
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigError(KpubberError):
    pass


class FatalError(KpubberError):
    """Raised when the process cannot do anything useful until restarted."""

    exit_code = 1


class PublicIPError(FatalError):
    exit_code = EXIT_CANNOT_OBTAIN_IP


class NodeNotFoundError(FatalError):
    exit_code = EXIT_CANNOT_FIND_NODE


class StoreError(KpubberError):
    pass


class AnnotationPatchError(StoreError):
    pass


class StatusPatchError(StoreError):
    pass
