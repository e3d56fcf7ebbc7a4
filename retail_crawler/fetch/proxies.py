# retail_crawler/fetch/proxies.py

"""Egress proxy providers and a round-robin manager over them."""

import logging
import random
import re
import threading
from abc import ABC, abstractmethod
from typing import Any

from retail_crawler.config.settings import Settings

logger = logging.getLogger("retail_crawler.proxy")

_CREDENTIALS_RE = re.compile(r"//([^:/@]+):([^@]+)@")


def mask_proxy_credentials(proxy_url: str | None) -> str:
    """Replace ``user:password`` in a proxy URL with asterisks."""
    if not proxy_url:
        return ""
    return _CREDENTIALS_RE.sub("//***:***@", proxy_url)


class ProxyProvider(ABC):
    """An egress route that can be asked for a fresh session."""

    name: str = "proxy"

    @abstractmethod
    def is_available(self) -> bool:
        """True only when the provider is configured and usable."""
        ...

    @abstractmethod
    def get_proxy_url(self) -> str | None:
        """Proxy URL for the current session, or None."""
        ...

    def get_proxy_config(self) -> dict[str, Any]:
        """Transport-ready proxy mapping (``{"http": .., "https": ..}``)."""
        url = self.get_proxy_url()
        if not url:
            return {}
        return {"http": url, "https": url}

    @abstractmethod
    def rotate(self) -> None:
        """Force a new egress session on next use."""
        ...


class NullProxyProvider(ProxyProvider):
    """Direct connection. Never available, rotation does nothing."""

    name = "null"

    def is_available(self) -> bool:
        return False

    def get_proxy_url(self) -> str | None:
        return None

    def rotate(self) -> None:
        return None


class BrightDataProxyProvider(ProxyProvider):
    """BrightData residential proxy with per-request session rotation.

    The session id and target country are encoded in the proxy username
    (``<user>-session-<id>-country-<cc>``), which is how BrightData pins a
    sticky exit IP.
    """

    name = "brightdata"

    def __init__(
        self,
        username: str | None = None,
        password: str | None = None,
        host: str | None = None,
        port: int | None = None,
        country: str | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._username = (
            Settings.BRIGHTDATA_USERNAME if username is None else username
        )
        self._password = (
            Settings.BRIGHTDATA_PASSWORD if password is None else password
        )
        self._host = host or Settings.BRIGHTDATA_HOST
        self._port = port or Settings.BRIGHTDATA_PORT
        self._country = (
            Settings.BRIGHTDATA_COUNTRY if country is None else country
        )
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._session_id = self._new_session_id()

    def _new_session_id(self) -> str:
        return str(self._rng.randint(1_000_000, 9_999_999))

    @property
    def session_id(self) -> str:
        return self._session_id

    def is_available(self) -> bool:
        return bool(self._username and self._password)

    def get_proxy_url(self) -> str | None:
        if not self.is_available():
            return None
        with self._lock:
            session_id = self._session_id
        user = f"{self._username}-session-{session_id}"
        if self._country:
            user += f"-country-{self._country}"
        return f"http://{user}:{self._password}@{self._host}:{self._port}"

    def rotate(self) -> None:
        with self._lock:
            self._session_id = self._new_session_id()
        logger.debug(
            "[%s] Rotated to session %s", self.name, self._session_id,
        )

    def sticky_session(self, session_id: str) -> None:
        """Pin the exit IP to a caller-chosen session id."""
        with self._lock:
            self._session_id = session_id


class ProxyManager(ProxyProvider):
    """Round-robin over several providers, skipping unavailable ones."""

    name = "manager"

    def __init__(self, providers: list[ProxyProvider] | None = None) -> None:
        self._providers: list[ProxyProvider] = list(providers or [])
        self._index = 0
        self._lock = threading.Lock()

    def add_provider(self, provider: ProxyProvider) -> None:
        with self._lock:
            self._providers.append(provider)

    def _scan(self) -> tuple[int, ProxyProvider] | None:
        count = len(self._providers)
        for offset in range(count):
            idx = (self._index + offset) % count
            provider = self._providers[idx]
            if provider.is_available():
                return idx, provider
        return None

    def get_current_provider(self) -> ProxyProvider | None:
        """First available provider scanning from the cursor, or None."""
        with self._lock:
            found = self._scan()
        return found[1] if found else None

    def is_available(self) -> bool:
        return self.get_current_provider() is not None

    def get_proxy_url(self) -> str | None:
        provider = self.get_current_provider()
        return provider.get_proxy_url() if provider else None

    def get_proxy_config(self) -> dict[str, Any]:
        provider = self.get_current_provider()
        return provider.get_proxy_config() if provider else {}

    def rotate(self) -> None:
        """Rotate the active provider's session and advance the cursor."""
        with self._lock:
            found = self._scan()
            if found is None:
                return
            idx, provider = found
            self._index = (idx + 1) % len(self._providers)
        provider.rotate()
