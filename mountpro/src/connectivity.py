"""
Connectivity monitor: a single online/offline flag gating network flows.
"""

import asyncio
import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Tracks whether the network is reachable and notifies on transitions."""

    def __init__(self, is_online: Optional[Callable[[], bool]] = None, initial: Optional[bool] = None):
        self._probe = is_online
        if initial is None:
            initial = is_online() if is_online is not None else True
        self._online = bool(initial)
        self._listeners: List[Callable[[bool], None]] = []

    @property
    def online(self) -> bool:
        return self._online

    @property
    def offline(self) -> bool:
        return not self._online

    def add_listener(self, listener: Callable[[bool], None]) -> None:
        self._listeners.append(listener)

    def set_online(self, online: bool) -> bool:
        """Record a transition; returns True if the flag changed."""
        online = bool(online)
        if online == self._online:
            return False
        self._online = online
        logger.info(f"[CONNECTIVITY] now {'online' if online else 'offline'}")
        for listener in list(self._listeners):
            listener(online)
        return True

    def probe(self) -> bool:
        """Re-read the platform signal, if one was given."""
        if self._probe is not None:
            self.set_online(self._probe())
        return self._online


async def tcp_probe(host: str = "overpass-api.de", port: int = 443, timeout: float = 3.0) -> bool:
    """Return True if a TCP connection to host:port can be opened within `timeout`."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (OSError, asyncio.TimeoutError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True
