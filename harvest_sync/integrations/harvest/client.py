from __future__ import annotations

import random
import time
from typing import Any, Mapping

import requests

from harvest_sync.config import HarvestConfig, load_harvest_config


class HarvestClientError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, body_snippet: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body_snippet = body_snippet


def build_session(config: HarvestConfig | None = None) -> requests.Session:
    """Create a requests session carrying Harvest auth headers."""

    config = config or load_harvest_config()
    account_id, access_token = config.require_credentials()
    session = requests.Session()
    session.headers.update(
        {
            "Authorization": f"Bearer {access_token}",
            "Harvest-Account-Id": account_id,
            "User-Agent": config.user_agent,
            "accept": "application/json",
        }
    )
    return session


def _retry_delay(attempt: int, retry_after: str | None = None) -> float:
    delay = 1.0 * (2**attempt)
    retry_after = (retry_after or "").strip()
    if retry_after.isdigit():
        delay = max(delay, float(retry_after))
    return delay + random.uniform(0.0, delay * 0.25)


def _request_json(
    session: requests.Session,
    url: str,
    *,
    params: Mapping[str, Any] | None = None,
    timeout_seconds: float = 20.0,
    allow_not_found: bool = False,
) -> dict[str, Any] | None:
    """
    GET a Harvest endpoint and return its JSON object.

    Connection errors, 429 and 5xx are retried with backoff (up to three
    attempts). A 404 returns None when `allow_not_found` is set.
    """

    max_attempts = 3

    last_response: requests.Response | None = None
    for attempt in range(max_attempts):
        try:
            resp = session.get(url, params=params, timeout=timeout_seconds)
        except requests.RequestException as exc:
            if attempt < max_attempts - 1:
                time.sleep(_retry_delay(attempt))
                continue
            raise HarvestClientError(f"Harvest request failed: {exc}") from exc

        last_response = resp
        if resp.status_code == 200:
            break
        if resp.status_code == 404 and allow_not_found:
            return None

        retryable = resp.status_code == 429 or 500 <= resp.status_code < 600
        if retryable and attempt < max_attempts - 1:
            time.sleep(_retry_delay(attempt, resp.headers.get("Retry-After")))
            continue

        raise HarvestClientError(
            f"Harvest request failed with HTTP {resp.status_code}.",
            status_code=resp.status_code,
            body_snippet=(resp.text or "")[:400],
        )

    if last_response is None:
        raise HarvestClientError("Harvest request failed (no response).")
    resp = last_response

    try:
        payload = resp.json()
    except ValueError as exc:
        raise HarvestClientError(
            "Harvest returned non-JSON response.",
            status_code=resp.status_code,
            body_snippet=(resp.text or "")[:400],
        ) from exc

    if not isinstance(payload, dict):
        raise HarvestClientError("Harvest returned unexpected JSON shape (not an object).")
    return payload


def fetch_resource(
    resource: str,
    record_id: int | str,
    *,
    config: HarvestConfig | None = None,
    session: requests.Session | None = None,
) -> dict[str, Any] | None:
    """
    Fetch a single Harvest record, e.g. `fetch_resource("users", 123)`.

    Returns None when Harvest answers 404.
    """

    config = config or load_harvest_config()
    session = session or build_session(config)
    url = f"{config.base_url}/{resource}/{int(record_id)}"
    return _request_json(session, url, allow_not_found=True)


def list_resources(
    resource: str,
    *,
    params: Mapping[str, Any] | None = None,
    config: HarvestConfig | None = None,
    session: requests.Session | None = None,
    max_pages: int | None = None,
) -> list[dict[str, Any]]:
    """
    Fetch every record of a Harvest list endpoint, following `next_page`.

    The records live under a key named after the resource (`{"users": [...]}`).
    """

    config = config or load_harvest_config()
    session = session or build_session(config)
    url = f"{config.base_url}/{resource}"

    items: list[dict[str, Any]] = []
    page = 1
    pages_seen = 0
    while True:
        payload = _request_json(session, url, params={**dict(params or {}), "page": page}) or {}
        page_items = payload.get(resource)
        if isinstance(page_items, list):
            items.extend([i for i in page_items if isinstance(i, dict)])
        pages_seen += 1

        next_page = payload.get("next_page")
        if not isinstance(next_page, int) or next_page <= page:
            break
        if max_pages is not None and pages_seen >= max_pages:
            break
        page = next_page

    return items
