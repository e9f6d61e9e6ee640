"""Centralized configuration: all env vars in one place."""

import os


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
        self.git_sha: str = os.getenv("GIT_SHA", "unknown")
        self.environment: str = os.getenv("ENVIRONMENT", "local")

        # Upstream price history (RapidAPI)
        self.symbol: str = os.getenv("STOCK_SYMBOL", "NVDA").upper()
        self.rapidapi_key: str | None = os.getenv("RAPIDAPI_KEY")
        self.rapidapi_host: str = os.getenv("RAPIDAPI_HOST", "yahoo-finance15.p.rapidapi.com")
        self.history_url: str = os.getenv(
            "HISTORY_URL", f"https://{self.rapidapi_host}/api/v1/markets/stock/history"
        )
        self.request_timeout_seconds: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "10"))
        self.request_delay_seconds: float = float(os.getenv("REQUEST_DELAY_SECONDS", "0.5"))

        # Cache + polling
        self.cache_namespace: str = os.getenv("CACHE_NAMESPACE", "nvda-stock-data")
        self.cache_dir: str | None = os.getenv("CACHE_DIR", ".stockchart-cache") or None
        self.cache_duration_seconds: int = int(os.getenv("CACHE_DURATION_SECONDS", "300"))
        self.poll_interval_seconds: float = float(os.getenv("POLL_INTERVAL_SECONDS", "60"))
        self.default_range: str = os.getenv("DEFAULT_RANGE", "1M")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def credential_headers(self) -> dict[str, str]:
        """Header pair expected by the RapidAPI gateway."""
        return {
            "X-RapidAPI-Key": self.rapidapi_key or "",
            "X-RapidAPI-Host": self.rapidapi_host,
        }

    def validate(self) -> list[str]:
        """Return list of missing required env vars for upstream fetches."""
        required = ["RAPIDAPI_KEY"]
        return [var for var in required if not getattr(self, _attr_for(var))]


settings = Settings()


def _attr_for(env_var: str) -> str:
    """Map env var name to Settings attribute name."""
    mapping = {
        "RAPIDAPI_KEY": "rapidapi_key",
    }
    return mapping.get(env_var, env_var.lower())
