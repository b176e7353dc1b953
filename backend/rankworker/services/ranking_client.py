"""Ranking provider client using the DataForSEO organic SERP API.

Docs: https://docs.dataforseo.com/v3/serp/google/organic/live/advanced/
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urlparse

import httpx

from rankworker.config import Settings

logger = logging.getLogger(__name__)


class RankingProviderError(Exception):
    """A single rank check failed. The message is used for retry classification."""


@dataclass
class RankResult:
    found: bool
    position: Optional[int] = None
    url: Optional[str] = None


class RankingProvider(Protocol):
    def check(self, keyword: str, location_code: int, target_domain: str, device: str) -> RankResult:
        ...


def normalize_domain(value: str | None) -> str:
    """Reduce a website or URL to a bare lowercase hostname without ``www.``.

    >>> normalize_domain("https://www.Example.com/about/")
    'example.com'
    """
    if not value or not value.strip():
        return ""
    value = value.strip()
    url = value if value.startswith(("http://", "https://")) else f"https://{value}"
    host = urlparse(url).hostname or value
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


class DataForSEOClient:
    ORGANIC_SERP_ENDPOINT = "/serp/google/organic/live/advanced"
    SUCCESS = 20000

    def __init__(
        self,
        login: str | None,
        password: str | None,
        base_url: str = "https://api.dataforseo.com/v3",
        timeout: float = 30.0,
        depth: int = 100,
        language_code: str = "en",
        http_client: httpx.Client | None = None,
    ):
        self.login = login
        self.password = password
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.depth = depth
        self.language_code = language_code
        self._client = http_client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DataForSEOClient":
        return cls(
            login=settings.dataforseo_login,
            password=settings.dataforseo_password,
            base_url=settings.dataforseo_api_url,
            timeout=settings.dataforseo_timeout,
        )

    def close(self) -> None:
        self._client.close()

    def check(self, keyword: str, location_code: int, target_domain: str, device: str) -> RankResult:
        """Look up where ``target_domain`` ranks for ``keyword`` on the given device."""
        target = normalize_domain(target_domain)
        items = self._search(keyword, location_code, device)

        for item in items:
            if item.get("type") != "organic":
                continue
            url = item.get("url") or ""
            domain = normalize_domain(item.get("domain") or url)
            if domain and (domain == target or target in domain):
                position = item.get("rank_absolute") or None
                logger.info(f"[DataForSEO] '{keyword}' ({device}): {target} at #{position}")
                return RankResult(found=True, position=position, url=url or None)

        logger.info(f"[DataForSEO] '{keyword}' ({device}): {target} not in top {self.depth}")
        return RankResult(found=False)

    def _search(self, keyword: str, location_code: int, device: str) -> list[dict]:
        if not self.login or not self.password:
            raise RankingProviderError(
                "DataForSEO credentials not configured. Set DATAFORSEO_LOGIN and DATAFORSEO_PASSWORD."
            )

        body = [{
            "keyword": keyword,
            "location_code": location_code,
            "language_code": self.language_code,
            "device": device,
            "depth": self.depth,
        }]

        try:
            resp = self._client.post(
                f"{self.base_url}{self.ORGANIC_SERP_ENDPOINT}",
                json=body,
                auth=(self.login, self.password),
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            raise RankingProviderError(f"Request timeout ({self.timeout:g} seconds)")
        except httpx.HTTPError as e:
            raise RankingProviderError(f"Connection error: {e}")

        if resp.status_code >= 400:
            raise RankingProviderError(f"DFS-{resp.status_code} API returned {resp.status_code}: {resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError:
            raise RankingProviderError("DFS-502 API returned a non-JSON response")

        if data.get("status_code") != self.SUCCESS:
            raise RankingProviderError(f"DFS-{data.get('status_code')} API error: {data.get('status_message')}")

        tasks = data.get("tasks") or []
        if not tasks:
            raise RankingProviderError("No task returned from API")

        task = tasks[0]
        if task.get("status_code") != self.SUCCESS:
            raise RankingProviderError(f"DFS-{task.get('status_code')} Task failed: {task.get('status_message')}")

        result = (task.get("result") or [{}])[0] or {}
        return result.get("items") or []
