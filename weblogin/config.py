from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

_PACKAGE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class AppSettings:
    environment: str
    log_level: str
    static_dir: str
    templates_dir: str
    https_redirection: bool

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache(maxsize=1)
def load_app_settings() -> AppSettings:
    """Load hosting settings (environment name, logging, asset locations) from the environment."""
    https_env = (os.getenv("WEBLOGIN_HTTPS_REDIRECTION", "") or "").strip().lower()
    return AppSettings(
        environment=(os.getenv("WEBLOGIN_ENVIRONMENT", "") or "Production").strip(),
        log_level=(os.getenv("LOG_LEVEL", "") or "INFO").strip().upper(),
        static_dir=(os.getenv("WEBLOGIN_STATIC_DIR", "") or str(_PACKAGE_DIR / "wwwroot")).strip(),
        templates_dir=str(_PACKAGE_DIR / "templates"),
        https_redirection=https_env not in ("0", "false", "no", "off"),
    )
