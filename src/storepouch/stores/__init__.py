"""Document store adapters.

``open_store`` turns a store URL into an adapter:

* ``memory://name`` or a bare name -- process-wide :class:`MemoryStore`
* ``http://`` / ``https://`` -- :class:`CouchStore`
"""

from __future__ import annotations

import aiohttp

from storepouch._constants import MEMORY_SCHEME
from storepouch._redact import redact_url
from storepouch.exceptions import ConfigError
from storepouch.stores.base import ChangesBatch, Doc, DocumentStore, revision_generation, revision_wins
from storepouch.stores.couch import CouchStore
from storepouch.stores.memory import MemoryStore, get_memory_store, match_selector, reset_memory_stores


async def open_store(
    url: str,
    *,
    http_session: aiohttp.ClientSession | None = None,
    timeout: float | None = None,
) -> DocumentStore:
    """Open the store addressed by *url*.

    Raises
    ------
    ConfigError
        For an empty URL, an unsupported scheme, or an HTTP URL without a
        session to carry requests.
    """
    url = url.strip()
    if not url:
        raise ConfigError("no database specified")
    if url.startswith(MEMORY_SCHEME):
        return get_memory_store(url[len(MEMORY_SCHEME) :] or "memory")
    if url.startswith(("http://", "https://")):
        if http_session is None:
            raise ConfigError(f"An HTTP session is required to open {redact_url(url)}")
        store = CouchStore(url, http_session, timeout=timeout)
        await store.open()
        return store
    if "://" in url:
        raise ConfigError(f"Unsupported store URL {redact_url(url)}")
    return get_memory_store(url)


__all__ = [
    "ChangesBatch",
    "CouchStore",
    "Doc",
    "DocumentStore",
    "MemoryStore",
    "get_memory_store",
    "match_selector",
    "open_store",
    "reset_memory_stores",
    "revision_generation",
    "revision_wins",
]
