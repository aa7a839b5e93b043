"""Offline network layer: a service-worker style request router.

Every request goes through one of three tiers:

* cross-origin requests are not handled and go straight to the network;
* API requests (path contains the API segment) are network-first and fall
  back to a cached copy of the identical request;
* everything else is network-first, successful GETs are cached, and a failed
  navigation with nothing cached gets the offline root document.

The worker is installed (static manifest pre-cached into a versioned cache)
and activated (older caches dropped, open clients claimed) before use. A host
can drive it through an EventChannel by emitting ``install``, ``activate``
and ``fetch`` events after calling ``register``.
"""
from dataclasses import dataclass
from threading import Lock
from typing import Dict, Iterable, List, Optional, Set

from config import (
    API_PATH_SEGMENT,
    APP_ORIGIN,
    CACHE_API_RESPONSES,
    OFFLINE_CACHE_NAME,
    OFFLINE_FALLBACK_PATH,
    STATIC_ASSETS,
)
from events import EventChannel, Unsubscribe
from exceptions import InstallError, NetworkError
from log import get_logger
from network import NetworkClient, Request, Response, origin_of

logger = get_logger(__name__)


class RequestCache:
    """Named response cache keyed by request URL. Only GETs are matched."""

    def __init__(self, name: str):
        self.name = name
        self._entries: Dict[str, Response] = {}
        self._lock = Lock()

    @staticmethod
    def _key(request: Request) -> str:
        return request.url

    def put(self, request: Request, response: Response) -> None:
        with self._lock:
            self._entries[self._key(request)] = response

    def match(self, request: Request) -> Optional[Response]:
        if request.method.upper() != "GET":
            return None
        with self._lock:
            entry = self._entries.get(self._key(request))
            # hand out copies so the stored body stays readable
            return entry.clone() if entry is not None else None

    def add_all(self, requests: Iterable[Request], network: NetworkClient) -> None:
        """Fetch and store every request, or store nothing."""
        fetched = []
        for request in requests:
            try:
                response = network.fetch(request)
            except NetworkError as e:
                raise InstallError(f"Failed to fetch {request.url}: {e}") from e
            if not response.ok:
                raise InstallError(f"Failed to fetch {request.url}: HTTP {response.status}")
            fetched.append((request, response))
        with self._lock:
            for request, response in fetched:
                self._entries[self._key(request)] = response

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self):
        with self._lock:
            return len(self._entries)


class CacheStorage:
    def __init__(self):
        self._caches: Dict[str, RequestCache] = {}
        self._lock = Lock()

    def open(self, name: str) -> RequestCache:
        with self._lock:
            if name not in self._caches:
                self._caches[name] = RequestCache(name)
            return self._caches[name]

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._caches)

    def delete(self, name: str) -> bool:
        with self._lock:
            return self._caches.pop(name, None) is not None

    def match(self, request: Request) -> Optional[Response]:
        """First match across caches, oldest cache first."""
        with self._lock:
            caches = list(self._caches.values())
        for cache in caches:
            response = cache.match(request)
            if response is not None:
                return response
        return None


@dataclass
class FetchEvent:
    request: Request
    response: Optional[Response] = None
    handled: bool = False

    def respond_with(self, response: Optional[Response]) -> None:
        self.response = response
        self.handled = True


class OfflineWorker:
    def __init__(
        self,
        network: NetworkClient,
        caches: Optional[CacheStorage] = None,
        *,
        origin: str = APP_ORIGIN,
        cache_name: str = OFFLINE_CACHE_NAME,
        static_assets: Iterable[str] = STATIC_ASSETS,
        fallback_path: str = OFFLINE_FALLBACK_PATH,
        api_segment: str = API_PATH_SEGMENT,
        cache_api_responses: bool = CACHE_API_RESPONSES,
    ):
        self.network = network
        self.caches = caches or CacheStorage()
        self.origin = origin_of(origin)
        self.cache_name = cache_name
        self.static_assets = tuple(static_assets)
        self.fallback_path = fallback_path
        self.api_segment = api_segment
        self.cache_api_responses = cache_api_responses

        self.state = "parsed"
        self.skipped_waiting = False
        self.clients: Set[str] = set()
        self.controlled: Set[str] = set()

    # ---------- lifecycle ----------

    def register(self, channel: EventChannel) -> Unsubscribe:
        """Subscribe the lifecycle handlers; returns one handle removing all three."""
        handles = [
            channel.subscribe("install", lambda _: self.install()),
            channel.subscribe("activate", lambda _: self.activate()),
            channel.subscribe("fetch", self.handle_fetch),
        ]

        def unsubscribe():
            for handle in handles:
                handle()

        return unsubscribe

    def install(self) -> None:
        self.state = "installing"
        requests = [Request.for_path(self.origin, path) for path in self.static_assets]
        try:
            self.caches.open(self.cache_name).add_all(requests, self.network)
        except InstallError:
            self.state = "redundant"
            logger.error(f"Install of {self.cache_name} failed", exc_info=True)
            raise
        self.state = "installed"
        self.skipped_waiting = True
        logger.info(f"Pre-cached {len(requests)} static assets into {self.cache_name}")

    def activate(self) -> List[str]:
        """Drop every cache but the current version, then claim open clients."""
        self.state = "activating"
        stale = [name for name in self.caches.keys() if name != self.cache_name]
        for name in stale:
            self.caches.delete(name)
            logger.info(f"Deleted old cache {name}")
        self.controlled = set(self.clients)
        self.state = "activated"
        return stale

    def connect_client(self, client_id: str) -> None:
        self.clients.add(client_id)
        if self.state == "activated":
            self.controlled.add(client_id)

    # ---------- routing ----------

    def is_same_origin(self, request: Request) -> bool:
        return request.origin == self.origin

    def is_api_request(self, request: Request) -> bool:
        return self.api_segment in request.path

    def handle_fetch(self, event: FetchEvent) -> None:
        request = event.request
        if not self.is_same_origin(request):
            return
        if self.is_api_request(request):
            event.respond_with(self._api_fetch(request))
        else:
            event.respond_with(self._network_first(request))

    def fetch(self, request: Request) -> Optional[Response]:
        """Route ``request``; unhandled requests go directly to the network."""
        event = FetchEvent(request)
        self.handle_fetch(event)
        if not event.handled:
            return self.network.fetch(request)
        return event.response

    def _store(self, request: Request, response: Response) -> None:
        if request.method.upper() == "GET" and response.status == 200:
            self.caches.open(self.cache_name).put(request, response.clone())

    def _api_fetch(self, request: Request) -> Response:
        try:
            response = self.network.fetch(request)
        except NetworkError:
            cached = self.caches.match(request)
            if cached is None:
                raise
            logger.info(f"Serving cached API response for {request.url}")
            return cached
        if self.cache_api_responses:
            self._store(request, response)
        return response

    def _network_first(self, request: Request) -> Optional[Response]:
        try:
            response = self.network.fetch(request)
        except NetworkError:
            cached = self.caches.match(request)
            if cached is not None:
                return cached
            if request.is_navigation:
                logger.info(f"Offline, serving {self.fallback_path} for {request.url}")
                return self.caches.match(Request.for_path(self.origin, self.fallback_path))
            return None
        self._store(request, response)
        return response
