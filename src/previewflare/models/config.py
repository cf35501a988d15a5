from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from previewflare.constants import API_BASE, KEEP_ALIVE_INTERVAL, PREVIEW_HOST
from previewflare.models.target import GlobalUser

__all__ = ["Config"]


class Config(BaseSettings):
    """Settings loaded from PREVIEWFLARE_* environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_prefix="PREVIEWFLARE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_token: SecretStr | None = None
    email: str | None = None
    api_key: SecretStr | None = None
    account_id: str = ""

    api_base: str = API_BASE
    preview_host: str = PREVIEW_HOST
    http_timeout: float = 30.0
    keep_alive_interval: float = KEEP_ALIVE_INTERVAL

    def global_user(self) -> GlobalUser | None:
        """Return the configured credentials, or None when none are set."""
        if self.api_token is not None:
            return GlobalUser(api_token=self.api_token)
        if self.email and self.api_key is not None:
            return GlobalUser(email=self.email, api_key=self.api_key)
        return None
