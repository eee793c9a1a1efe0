"""
Application settings loaded from the environment (.env supported).
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    database_url: str
    app_env: str
    encryption_key: Optional[str]
    credential_kdf_salt: str
    site_base_url: str
    image_proxy_cache_ttl: int
    image_proxy_max_bytes: int
    adapter_http_timeout: int

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


def get_settings() -> Settings:
    """Read settings from environment variables."""
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///catalogbridge.db"),
        app_env=os.getenv("APP_ENV", "development"),
        encryption_key=os.getenv("ENCRYPTION_KEY") or None,
        credential_kdf_salt=os.getenv("CREDENTIAL_KDF_SALT", "catalogbridge.salt"),
        site_base_url=os.getenv("SITE_BASE_URL", "http://localhost:8000").rstrip("/"),
        image_proxy_cache_ttl=int(os.getenv("IMAGE_PROXY_CACHE_TTL", "21600")),
        image_proxy_max_bytes=int(os.getenv("IMAGE_PROXY_MAX_BYTES", str(10 * 1024 * 1024))),
        adapter_http_timeout=int(os.getenv("ADAPTER_HTTP_TIMEOUT", "30")),
    )
