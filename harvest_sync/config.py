from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from harvest_sync.utils.env import env_flag, load_env

HARVEST_API_BASE_URL = "https://api.harvestapp.com/v2"
DEFAULT_USER_AGENT = "harvest-sync (https://github.com/harvest-sync/harvest-sync)"


@dataclass(frozen=True)
class HarvestConfig:
    """
    Runtime settings for Harvest access and local persistence.

    `uses_database` gates both the local lookup by external id and saving
    freshly fetched records.
    """

    account_id: str | None = None
    access_token: str | None = None
    uses_database: bool = True
    base_url: str = HARVEST_API_BASE_URL
    user_agent: str = DEFAULT_USER_AGENT

    def require_credentials(self) -> tuple[str, str]:
        if not self.access_token:
            raise RuntimeError("HARVEST_ACCESS_TOKEN environment variable is not set")
        if not self.account_id:
            raise RuntimeError("HARVEST_ACCOUNT_ID environment variable is not set")
        return self.account_id, self.access_token


def _env_str(name: str) -> str | None:
    value = (os.getenv(name) or "").strip()
    return value or None


def read_harvest_config() -> HarvestConfig:
    return HarvestConfig(
        account_id=_env_str("HARVEST_ACCOUNT_ID"),
        access_token=_env_str("HARVEST_ACCESS_TOKEN"),
        uses_database=env_flag("HARVEST_USES_DATABASE", default=True),
        base_url=(_env_str("HARVEST_API_BASE_URL") or HARVEST_API_BASE_URL).rstrip("/"),
        user_agent=_env_str("HARVEST_USER_AGENT") or DEFAULT_USER_AGENT,
    )


@lru_cache
def load_harvest_config() -> HarvestConfig:
    """Load `.env` once and build the process-wide config."""

    load_env()
    return read_harvest_config()
