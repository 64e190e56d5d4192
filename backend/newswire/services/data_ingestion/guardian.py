"""
The Guardian content API source.
API docs: https://open-platform.theguardian.com/documentation/

One newest-first page is requested per section each cycle. Without an
API key the source stays silent instead of failing the cycle.
"""

from datetime import datetime
from typing import Optional
import logging

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from newswire.services.data_ingestion.base import (
    BaseSource,
    RawArticle,
    SourceConfig,
    SourceType,
    clean_html,
)

logger = logging.getLogger(__name__)

GUARDIAN_SECTIONS = ["politics", "technology", "business", "world"]

# Body text is truncated to this length when no trail text is present
BODY_EXCERPT_LENGTH = 300


class GuardianAPIError(RuntimeError):
    """The content API answered with a non-ok status."""


def create_guardian_config(
    api_key: Optional[str],
    base_url: str = "https://content.guardianapis.com",
    timeout_seconds: float = 10.0,
    page_size: int = 10,
) -> SourceConfig:
    """Create default Guardian source configuration."""
    return SourceConfig(
        name="The Guardian",
        source_type=SourceType.SEARCH_API,
        base_url=base_url,
        endpoints={section: section for section in GUARDIAN_SECTIONS},
        api_key=api_key,
        timeout_seconds=timeout_seconds,
        max_items_per_endpoint=page_size,
    )


class GuardianSource(BaseSource):
    """Paginated search API source for The Guardian."""

    def _has_api_key(self) -> bool:
        return bool(self.config.api_key)

    async def fetch_recent(self) -> tuple[list[RawArticle], list[str]]:
        if not self._has_api_key():
            logger.warning("Guardian API key not provided, skipping source")
            return [], []
        return await super().fetch_recent()

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        reraise=True,
    )
    async def _fetch(self, params: dict) -> dict:
        """Fetch one search page; transport failures are retried."""
        async with self.http() as client:
            response = await client.get(
                f"{self.config.base_url}/search",
                params={**params, "api-key": self.config.api_key},
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()

        payload = data.get("response", {})
        if payload.get("status") != "ok":
            raise GuardianAPIError(f"Guardian API error: {payload.get('message', 'unknown')}")
        return payload

    async def fetch_endpoint(self, topic_label: str, target: str) -> list[RawArticle]:
        """Fetch the newest page of one section."""
        params = {
            "section": target,
            "page-size": self.config.max_items_per_endpoint,
            "show-fields": "thumbnail,trailText,bodyText",
            "order-by": "newest",
        }
        payload = await self._fetch(params)

        results = payload.get("results", [])[: self.config.max_items_per_endpoint]
        return [self.parse_result(result, topic_label) for result in results]

    def parse_result(self, result: dict, topic_label: str) -> RawArticle:
        """Parse a content API result into a RawArticle."""
        fields = result.get("fields") or {}

        summary = clean_html(fields.get("trailText"))
        if not summary:
            summary = (fields.get("bodyText") or "")[:BODY_EXCERPT_LENGTH].strip()

        return RawArticle(
            source_name=self.name,
            title=(result.get("webTitle") or "").strip(),
            summary=summary,
            url=result.get("webUrl"),
            published_at=self._parse_date(result.get("webPublicationDate")),
            image_url=fields.get("thumbnail"),
            topic_label=topic_label,
        )

    def _parse_date(self, date_str: Optional[str]) -> Optional[datetime]:
        if not date_str:
            return None
        try:
            return datetime.fromisoformat(date_str.replace("Z", "+00:00"))
        except ValueError:
            return None
