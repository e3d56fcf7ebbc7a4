# retail_crawler/fetch/http_fetcher.py

"""Anti-bot HTTP client used by every crawl.

One fetch is one GET. The fetcher rotates the user agent, sends a browser
navigation header set, optionally routes through a rotating proxy, and
turns every failure into :class:`FetchError`. It never retries and never
sleeps: backoff and per-retailer pacing belong to the caller.
"""

import logging
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests

from retail_crawler.config.settings import Settings
from retail_crawler.fetch.proxies import ProxyProvider, mask_proxy_credentials
from retail_crawler.fetch.user_agents import UserAgentPool

logger = logging.getLogger("retail_crawler.fetch")

# Cloudflare challenge page markers (checked before keyword scan)
_CF_CHALLENGE_MARKERS: list[str] = [
    "challenges.cloudflare.com",
    "cdn-cgi/challenge-platform",
    "just a moment",
    "cf-turnstile",
    "cf_chl_opt",
]


class FetchError(Exception):
    """A page could not be fetched (network, timeout, redirects, non-2xx)."""

    def __init__(
        self,
        url: str,
        cause: BaseException | str,
        status_code: int | None = None,
    ) -> None:
        self.url = url
        self.cause = cause
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: {cause}")


def merge_headers(
    base: dict[str, str],
    *overrides: dict[str, str] | None,
) -> dict[str, str]:
    """Layer *overrides* onto *base*, matching header names case-insensitively.

    A later "user-agent" replaces an earlier "User-Agent" instead of being
    sent alongside it. The override's spelling wins.
    """
    merged = dict(base)
    for layer in overrides:
        if not layer:
            continue
        for name, value in layer.items():
            for existing in [k for k in merged if k.lower() == name.lower()]:
                del merged[existing]
            merged[name] = value
    return merged


def looks_blocked(
    html: str,
    extra_markers: tuple[str, ...] | list[str] = (),
) -> str | None:
    """Return the marker that identifies *html* as a challenge page.

    Cloudflare markers are high-confidence and always checked. Generic
    CAPTCHA keywords are only trusted on small pages, since real product
    pages often mention "captcha" in inline scripts.
    """
    if html.lstrip().startswith(("{", "[")):
        return None
    lower = html.lower()
    for marker in (*_CF_CHALLENGE_MARKERS, *extra_markers):
        if marker and marker in lower:
            return marker
    has_body_content = "<body" in lower and len(html) > 5000
    if not has_body_content:
        for keyword in Settings.CAPTCHA_KEYWORDS:
            if keyword in lower:
                return keyword
    return None


class HttpFetcher:
    """Fetch HTML with rotating identity; raise :class:`FetchError` on failure."""

    def __init__(
        self,
        user_agents: UserAgentPool | None = None,
        proxy: ProxyProvider | None = None,
        default_headers: dict[str, str] | None = None,
        user_agent_mode: str | None = None,
        transport: str | None = None,
        strict: bool = True,
        connect_timeout: float | None = None,
        timeout: float | None = None,
        max_redirects: int | None = None,
    ) -> None:
        self.settings = Settings()
        self.user_agents = user_agents or UserAgentPool()
        self.proxy = proxy
        self.default_headers = merge_headers(
            self.settings.DEFAULT_HEADERS, default_headers
        )
        self.user_agent_mode = (
            user_agent_mode or self.settings.USER_AGENT_MODE
        )
        self.transport = transport or self.settings.FETCH_TRANSPORT
        self.strict = strict
        self.connect_timeout = (
            connect_timeout or self.settings.CONNECT_TIMEOUT
        )
        self.timeout = timeout or self.settings.REQUEST_TIMEOUT
        self.max_redirects = (
            self.settings.MAX_REDIRECTS
            if max_redirects is None
            else max_redirects
        )
        self.session = self._build_session()
        self.last_status_code: int | None = None
        self.last_headers: dict[str, str] = {}

    # ── Private helpers ──────────────────────────────────

    def _build_session(self) -> Any:
        if self.transport == "cloudscraper":
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            scraper.max_redirects = self.max_redirects
            return scraper
        if self.transport != "curl_cffi":
            raise ValueError(f"Unknown fetch transport: {self.transport!r}")
        return curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )

    def _build_headers(self, overrides: dict[str, str] | None) -> dict[str, str]:
        """Defaults < rotated User-Agent < caller overrides."""
        return merge_headers(
            self.default_headers,
            {"User-Agent": self.user_agents.pick(self.user_agent_mode)},
            overrides,
        )

    def _next_proxy(self) -> dict[str, Any]:
        if self.proxy is None or not self.proxy.is_available():
            return {}
        self.proxy.rotate()
        config = self.proxy.get_proxy_config()
        logger.debug(
            "Routing through proxy %s",
            mask_proxy_credentials(config.get("https")),
        )
        return config

    def _request(
        self,
        url: str,
        headers: dict[str, str],
        proxies: dict[str, Any],
        timeout: float,
    ) -> Any:
        kwargs: dict[str, Any] = {
            "headers": headers,
            "allow_redirects": True,
            "timeout": (self.connect_timeout, timeout),
        }
        if proxies:
            kwargs["proxies"] = proxies
        # cloudscraper takes the redirect cap from the session instead
        if self.transport != "cloudscraper":
            kwargs["max_redirects"] = self.max_redirects
        return self.session.get(url, **kwargs)

    # ── Public API ───────────────────────────────────────

    def fetch(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> str:
        """GET *url* and return the response body as text.

        Raises:
            FetchError: on timeout, transport error, too many redirects,
                or (in strict mode) a non-2xx status.
        """
        request_headers = self._build_headers(headers)
        proxies = self._next_proxy()
        self.last_status_code = None
        self.last_headers = {}

        try:
            resp = self._request(
                url, request_headers, proxies, timeout or self.timeout
            )
        except Exception as exc:
            logger.warning(
                "Fetch failed for %s via %s: %s",
                url,
                mask_proxy_credentials(proxies.get("https")) or "direct",
                mask_proxy_credentials(str(exc)),
            )
            raise FetchError(url, exc) from exc

        self.last_status_code = int(resp.status_code)
        self.last_headers = {
            str(k): str(v) for k, v in resp.headers.items()
        }
        logger.debug(
            "GET %s -> HTTP %d (%d bytes)",
            url,
            self.last_status_code,
            len(resp.text or ""),
        )

        if self.strict and not 200 <= self.last_status_code < 300:
            raise FetchError(
                url,
                f"HTTP {self.last_status_code}",
                status_code=self.last_status_code,
            )
        return str(resp.text)

    def close(self) -> None:
        """Release the underlying session."""
        self.session.close()
