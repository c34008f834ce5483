"""Facebook Page publisher (Graph API).

Publishes text posts to ``/{page-id}/feed`` and text+image posts to
``/{page-id}/photos`` with a Page access token.  Requests are form-encoded
``POST``s made with ``urllib.request`` in a worker thread, so the event
loop stays free and the orchestrator's timeout applies.

Tags:
    storecast, publishing, facebook, graph-api, HTTP-POST

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from storecast.core.enums import Platform
from storecast.publishing.protocol import PublishResult

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_API_URL = "https://graph.facebook.com/v24.0"


def parse_graph_error(body: str) -> str:
    """Render a Graph API error body; unparseable bodies are returned raw."""
    try:
        payload = json.loads(body)
    except ValueError:
        return body
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return body
    return (
        f"{error.get('message')} "
        f"(Code: {error.get('code', 0)}, Type: {error.get('type')})"
    )


class FacebookPublisher:
    """Graph API publisher for Facebook Pages."""

    platform = Platform.FACEBOOK.value

    def __init__(
        self,
        graph_api_url: str = DEFAULT_GRAPH_API_URL,
        *,
        http_timeout: float = 30.0,
    ) -> None:
        self.graph_api_url = graph_api_url.rstrip("/")
        self.http_timeout = http_timeout

    async def publish(
        self,
        caption: str,
        image_url: str | None,
        token: str,
        external_account_id: str,
    ) -> PublishResult:
        if not external_account_id:
            return PublishResult.failure("ExternalPageId (Facebook Page ID) is required")
        if not token:
            return PublishResult.failure("AccessToken (Page Access Token) is required")
        if not caption:
            return PublishResult.failure("Caption (post message) is required")

        if image_url:
            endpoint = f"{self.graph_api_url}/{external_account_id}/photos"
            form = {"message": caption, "url": image_url, "access_token": token}
        else:
            endpoint = f"{self.graph_api_url}/{external_account_id}/feed"
            form = {"message": caption, "access_token": token}

        logger.info(
            f"Publishing {'photo' if image_url else 'text post'} "
            f"to Facebook page {external_account_id}"
        )
        return await asyncio.to_thread(self._post, endpoint, form)

    def _post(self, endpoint: str, form: dict[str, str]) -> PublishResult:
        req = urllib.request.Request(
            endpoint,
            data=urllib.parse.urlencode(form).encode("utf-8"),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.http_timeout) as response:
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            logger.error(f"Facebook post failed: {e.code} {body}")
            return PublishResult.failure(f"Facebook API error: {parse_graph_error(body)}")
        except urllib.error.URLError as e:
            logger.error(f"HTTP error publishing to Facebook: {e.reason}")
            return PublishResult.failure(f"HTTP error: {e.reason}")

        try:
            payload: Any = json.loads(body)
        except ValueError:
            payload = None
        post_id = payload.get("id") if isinstance(payload, dict) else None
        if not post_id:
            logger.error(f"No post ID returned from Facebook. Response: {body}")
            return PublishResult.failure("No post ID returned from Facebook")

        logger.info(f"Published to Facebook. Post ID: {post_id}")
        return PublishResult.success(str(post_id))
