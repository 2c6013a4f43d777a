from __future__ import annotations
import os
from typing import Dict

from pydantic import BaseModel, Field

HARVEST_API_URL = "https://api.harvestapp.com/v2"


class BridgeConfig(BaseModel):
    """
    Connection settings for one Harvest account.

    Loaded from a YAML file by BridgeRegistry, or built directly in code.
    The connector receives it at construction; nothing reads it from
    process-wide state.
    """

    bridge_id: str
    access_token: str                  # raw token, or 'env://VAR_NAME'
    account_id: str = ""
    base_url: str = HARVEST_API_URL
    user_agent: str = "harvest-bridge"
    timeout_s: float = 10.0

    # Harvest refuses per_page above 100.
    max_page_size: int = Field(default=100, ge=1, le=100)

    def resolved_token(self) -> str:
        if self.access_token.startswith("env://"):
            return os.environ.get(self.access_token[6:], "")
        return self.access_token

    def request_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.resolved_token()}",
            "Harvest-Account-ID": self.account_id,
            "User-Agent": self.user_agent,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
