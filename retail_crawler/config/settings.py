# retail_crawler/config/settings.py

"""Central configuration for the retail_crawler engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the retail_crawler engine."""

    # --- Fetching ---
    REQUEST_DELAY: float = 1.0          # Default seconds between requests per retailer
    CONNECT_TIMEOUT: int = 10           # Seconds to establish a connection
    REQUEST_TIMEOUT: int = 30           # Seconds for the whole request
    MAX_REDIRECTS: int = 5
    FETCH_TRANSPORT: str = os.getenv("CRAWLER_TRANSPORT", "curl_cffi")
    USER_AGENT_MODE: str = os.getenv("CRAWLER_USER_AGENT_MODE", "round_robin")
    MAX_CONCURRENT_CRAWLS: int = 4

    # --- Blocked page detection ---
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
        "access denied",
        "robot check",
    ]

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-GB,en;q=0.9",
        "Accept-Encoding": "gzip, deflate, br",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Proxies (BrightData residential) ---
    BRIGHTDATA_USERNAME: str = os.getenv("BRIGHTDATA_USERNAME", "")
    BRIGHTDATA_PASSWORD: str = os.getenv("BRIGHTDATA_PASSWORD", "")
    BRIGHTDATA_HOST: str = os.getenv("BRIGHTDATA_HOST", "brd.superproxy.io")
    BRIGHTDATA_PORT: int = int(os.getenv("BRIGHTDATA_PORT", "22225"))
    BRIGHTDATA_COUNTRY: str = os.getenv("BRIGHTDATA_COUNTRY", "gb")

    # --- Retailer health ---
    DEGRADED_AFTER_FAILURES: int = 5
    FAILED_AFTER_FAILURES: int = 10

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = BASE_DIR / "retail_crawler" / "config" / "selectors.json"
    TAXONOMY_PATH: Path = BASE_DIR / "retail_crawler" / "config" / "taxonomy.json"
    DB_PATH: Path = BASE_DIR / "data" / "crawler.db"
    LOGS_DIR: Path = BASE_DIR / "logs"
