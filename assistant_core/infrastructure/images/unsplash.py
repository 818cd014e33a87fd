import logging
from typing import Optional, Protocol

import httpx

from assistant_core.config.settings import settings
from assistant_core.infrastructure.logging.logger import logger


class ImageSearch(Protocol):
    def search(self, query: str) -> Optional[str]:
        ...


class UnsplashImageSearch:
    """Unsplash 图片搜索：返回第一张结果的 regular 尺寸 URL。

    失败一律记录告警并返回 None，调用方把头图视为可选。
    """

    def __init__(
        self,
        access_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.access_key = access_key if access_key is not None else settings.unsplash_access_key
        self.base_url = (base_url or settings.unsplash_base_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout

    def search(self, query: str) -> Optional[str]:
        if not query or not query.strip():
            return None
        if not self.access_key:
            logger.log(
                logging.WARNING,
                "image search skipped: no access key",
                extra={"extra": {"event": "image_search_skipped", "query": query}},
            )
            return None
        url = f"{self.base_url}/search/photos"
        headers = {"Authorization": f"Client-ID {self.access_key}", "Accept-Version": "v1"}
        params = {"query": query, "per_page": 1}
        try:
            with httpx.Client(timeout=self.timeout, trust_env=False) as client:
                resp = client.get(url, headers=headers, params=params)
            if resp.status_code >= 400:
                logger.log(
                    logging.WARNING,
                    "image search failed",
                    extra={"extra": {"event": "image_search_failed", "status": resp.status_code, "query": query}},
                )
                return None
            results = (resp.json() or {}).get("results") or []
        except (httpx.RequestError, ValueError) as e:
            logger.log(
                logging.WARNING,
                "image search failed",
                extra={"extra": {"event": "image_search_failed", "error": str(e), "query": query}},
            )
            return None
        if not results:
            return None
        return ((results[0] or {}).get("urls") or {}).get("regular")
