"""Runtime settings for the storefront API.

Values come from environment variables (a local `.env` is loaded first):
- DATABASE_URL / DATABASE_NAME: MongoDB connection
- BRAINTREE_ENVIRONMENT: sandbox (default) or production
- BRAINTREE_MERCHANT_ID / BRAINTREE_PUBLIC_KEY / BRAINTREE_PRIVATE_KEY
- PORT, LOG_LEVEL, CORS_ORIGINS (comma separated)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()


def parse_bool(val: str) -> bool:
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "storefront"

    braintree_environment: str = "sandbox"
    braintree_merchant_id: str = ""
    braintree_public_key: str = ""
    braintree_private_key: str = ""

    port: int = 8000
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            database_name=os.getenv("DATABASE_NAME", cls.database_name),
            braintree_environment=os.getenv("BRAINTREE_ENVIRONMENT", cls.braintree_environment),
            braintree_merchant_id=os.getenv("BRAINTREE_MERCHANT_ID", ""),
            braintree_public_key=os.getenv("BRAINTREE_PUBLIC_KEY", ""),
            braintree_private_key=os.getenv("BRAINTREE_PRIVATE_KEY", ""),
            port=int(os.getenv("PORT", cls.port)),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            cors_origins=_env_list("CORS_ORIGINS", "*"),
        )
