"""Connectivity signal consumed by the orchestrator."""
import logging

logger = logging.getLogger(__name__)


class Connectivity:
    """
    Online/offline flag owned by the host application.

    The host flips it from its network callbacks; the orchestrator only reads
    it. Defaults to online so a plain server process syncs without wiring.
    """

    def __init__(self, online: bool = True):
        self._online = online

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online != self._online:
            logger.info("Connectivity changed: %s", "online" if online else "offline")
        self._online = online
