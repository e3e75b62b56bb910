from functools import lru_cache
import logging
import os
import urllib.parse


logger = logging.getLogger(__name__)

DEFAULT_CONSENT_PURPOSES = (
    "Research Study Participation",
    "Data Sharing with Research Institution",
    "Third-Party Analytics Access",
    "Insurance Provider Access",
)


class Settings:
    def __init__(self) -> None:
        self.app_name = os.getenv("APP_NAME", "consent-dashboard-api")
        self.app_version = os.getenv("APP_VERSION", "0.1.0")
        self.env = os.getenv("ENV", "dev").lower()
        if self.env not in {"dev", "test", "staging", "prod"}:
            raise RuntimeError("ENV must be one of: dev, test, staging, prod")
        self.log_level = os.getenv("LOG_LEVEL", "DEBUG" if self.env in {"dev", "test"} else "INFO").upper().strip()

        self.consent_service_url = os.getenv("CONSENT_SERVICE_URL", "").strip().rstrip("/")
        if not self.consent_service_url:
            if self.env == "prod":
                raise RuntimeError("CONSENT_SERVICE_URL is required in prod")
            self.consent_service_url = "http://localhost:5000/api"
            logger.warning("CONSENT_SERVICE_URL not set, using local dev default")

        self.consent_service_api_key = os.getenv("CONSENT_SERVICE_API_KEY", "").strip() or None
        self.consent_service_timeout = float(os.getenv("CONSENT_SERVICE_TIMEOUT_SECONDS", "10"))
        self.consent_refresh_attempts = int(os.getenv("CONSENT_REFRESH_ATTEMPTS", "2"))
        self.consent_purposes = self._parse_csv_values("CONSENT_PURPOSES", default=",".join(DEFAULT_CONSENT_PURPOSES))

        self.cors_allowed_origins = self._parse_cors_origins()
        self.validate()

    def _parse_csv_values(self, env_name: str, default: str) -> list[str]:
        raw = os.getenv(env_name, default)
        return [item.strip() for item in raw.split(",") if item.strip()]

    def _parse_cors_origins(self) -> list[str]:
        raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
        if raw.strip():
            return [origin.strip() for origin in raw.split(",") if origin.strip()]
        if self.env == "dev":
            return ["http://localhost:3000", "http://127.0.0.1:3000"]
        return []

    def validate(self) -> None:
        parsed = urllib.parse.urlparse(self.consent_service_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise RuntimeError("CONSENT_SERVICE_URL must be an absolute http(s) URL")
        if not self.consent_purposes:
            raise RuntimeError("CONSENT_PURPOSES must list at least one purpose")
        if self.consent_service_timeout <= 0:
            raise RuntimeError("CONSENT_SERVICE_TIMEOUT_SECONDS must be > 0")
        if self.consent_refresh_attempts < 1:
            raise RuntimeError("CONSENT_REFRESH_ATTEMPTS must be >= 1")
        if self.env == "prod":
            if parsed.scheme != "https":
                raise RuntimeError("CONSENT_SERVICE_URL must use https in prod")
            if not self.cors_allowed_origins:
                raise RuntimeError("CORS_ALLOWED_ORIGINS must be explicitly set in prod")
            if self.log_level == "DEBUG":
                raise RuntimeError("LOG_LEVEL=DEBUG is not allowed in prod")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def reset_settings_cache() -> None:
    get_settings.cache_clear()
