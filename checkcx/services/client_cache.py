import json
import threading
from typing import Callable, Dict, Generic, Mapping, Optional, TypeVar


ClientT = TypeVar("ClientT")


def stable_headers_key(headers: Optional[Mapping[str, str]]) -> str:
    """Order-independent serialization of custom headers"""
    if not headers:
        return ""
    return json.dumps(dict(headers), sort_keys=True, separators=(",", ":"))


class ClientCache(Generic[ClientT]):
    """
    Process-wide pool of protocol clients.

    SDK clients own connection pools; building one per poll throws that away.
    Entries are keyed by base URL, credential and custom headers, created
    lazily and kept until reset(). The key space is bounded by the number of
    configured providers, so nothing is evicted.

    Safe under concurrent pollers: creation happens under a lock, so
    concurrent misses on one key converge on a single instance.
    """

    def __init__(self):
        self._clients: Dict[str, ClientT] = {}
        self._lock = threading.Lock()

    @staticmethod
    def make_key(base_url: str, api_key: str, headers: Optional[Mapping[str, str]] = None) -> str:
        return f"{base_url}::{api_key}::{stable_headers_key(headers)}"

    def get_or_create(
        self,
        base_url: str,
        api_key: str,
        headers: Optional[Mapping[str, str]],
        factory: Callable[[], ClientT],
    ) -> ClientT:
        key = self.make_key(base_url, api_key, headers)

        cached = self._clients.get(key)
        if cached is not None:
            return cached

        with self._lock:
            cached = self._clients.get(key)
            if cached is None:
                cached = factory()
                self._clients[key] = cached
            return cached

    def reset(self) -> None:
        with self._lock:
            self._clients.clear()

    def __len__(self) -> int:
        return len(self._clients)
