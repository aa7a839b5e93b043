from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol
from urllib.parse import urljoin, urlsplit

import requests

from config import NETWORK_TIMEOUT
from exceptions import BodyConsumedError, NetworkError
from log import get_logger

logger = get_logger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}


def origin_of(url: str) -> str:
    """``scheme://host[:port]`` with case and default ports normalized."""
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    try:
        host, port = parts.hostname or "", parts.port
    except ValueError:
        return f"{scheme}://{parts.netloc}".lower()
    if ":" in host:
        host = f"[{host}]"
    if port is None or port == DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


@dataclass(frozen=True)
class Request:
    url: str
    method: str = "GET"
    mode: str = "cors"  # "navigate" for page loads
    headers: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @property
    def origin(self) -> str:
        return origin_of(self.url)

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def is_navigation(self) -> bool:
        return self.mode == "navigate"

    @classmethod
    def for_path(cls, origin: str, path: str, **kwargs) -> "Request":
        return cls(url=urljoin(origin.rstrip("/") + "/", path.lstrip("/")), **kwargs)


class Response:
    """HTTP response whose body can be read exactly once.

    Use ``clone()`` before reading when two consumers need the body.
    """

    def __init__(self, url: str, status: int = 200, body: bytes = b"", headers: Optional[Dict[str, str]] = None):
        self.url = url
        self.status = status
        self.headers = dict(headers or {})
        self._body = body
        self._consumed = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def read(self) -> bytes:
        if self._consumed:
            raise BodyConsumedError(f"Body of {self.url} already read")
        self._consumed = True
        return self._body

    def clone(self) -> "Response":
        if self._consumed:
            raise BodyConsumedError(f"Cannot clone {self.url} after its body was read")
        return Response(self.url, self.status, bytes(self._body), self.headers)

    def __repr__(self):
        return f"<Response {self.status} {self.url}>"


class NetworkClient(Protocol):
    def fetch(self, request: Request) -> Response:
        ...


class RequestsNetworkClient:
    """NetworkClient over a requests.Session. Transport failures raise NetworkError."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = NETWORK_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self, request: Request) -> Response:
        try:
            r = self.session.request(request.method, request.url, headers=request.headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.info(f"{request.method} {request.url} failed: {e}")
            raise NetworkError(str(e)) from e
        return Response(request.url, r.status_code, r.content, dict(r.headers))
