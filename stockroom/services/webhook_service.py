import logging

import httpx

from stockroom.config import settings
from stockroom.services.events import ProductChanged

logger = logging.getLogger(__name__)


def configured_urls() -> list[str]:
    if not settings.WEBHOOK_URLS:
        return []
    return [u.strip() for u in settings.WEBHOOK_URLS.split(",") if u.strip()]


def _build_payload(event: ProductChanged) -> dict:
    return {"event": "product_changed", **event.to_dict()}


def send_webhook_sync(event: ProductChanged, urls: list[str] | None = None) -> list[dict]:
    """POST a product change to every configured webhook URL."""
    urls = configured_urls() if urls is None else urls
    if not urls:
        return []

    payload = _build_payload(event)
    results = []

    with httpx.Client(timeout=10.0) as client:
        for url in urls:
            try:
                resp = client.post(url, json=payload)
                results.append({"url": url, "status": resp.status_code, "success": resp.is_success})
            except httpx.HTTPError as e:
                logger.error("Webhook failed for %s: %s", url, e)
                results.append({"url": url, "status": 0, "success": False, "error": str(e)})

    return results
