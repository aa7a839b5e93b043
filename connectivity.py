from datetime import datetime, timedelta
from typing import Callable, Optional

from clock import Clock, SystemClock
from config import PROBE_INTERVAL
from events import EventChannel, Unsubscribe
from exceptions import NetworkError
from log import get_logger
from network import NetworkClient, Request

logger = get_logger(__name__)

ONLINE = "online"
OFFLINE = "offline"


class ConnectivityMonitor:
    """Tracks online/offline state and notifies subscribers on changes."""

    def __init__(
        self,
        channel: Optional[EventChannel] = None,
        online: bool = True,
        clock: Optional[Clock] = None,
        probe_interval: float = PROBE_INTERVAL,
    ):
        self.channel = channel or EventChannel()
        self.clock = clock or SystemClock()
        self.probe_interval = timedelta(seconds=probe_interval)
        self._online = online
        self._last_probe: Optional[datetime] = None

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info(f"Connectivity changed: {ONLINE if online else OFFLINE}")
        self.channel.emit(ONLINE if online else OFFLINE, online)

    def subscribe(self, handler: Callable[[bool], None]) -> Unsubscribe:
        """Call ``handler(is_online)`` on every change."""
        handles = [self.channel.subscribe(ONLINE, handler), self.channel.subscribe(OFFLINE, handler)]

        def unsubscribe():
            for handle in handles:
                handle()

        return unsubscribe

    def probe(self, network: NetworkClient, url: str, force: bool = False) -> bool:
        """Reachability check; any HTTP answer counts as online.

        Within ``probe_interval`` of the last check the known state is
        returned without touching the network unless ``force`` is set.
        """
        now = self.clock.now()
        if not force and self._last_probe is not None and now - self._last_probe < self.probe_interval:
            return self._online
        self._last_probe = now
        try:
            network.fetch(Request(url, method="HEAD"))
        except NetworkError:
            self.set_online(False)
        else:
            self.set_online(True)
        return self._online
