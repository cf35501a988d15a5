"""Deployment descriptor and credential models."""

import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, model_validator

from previewflare.exceptions import ConfigurationError

__all__ = ["GlobalUser", "KvNamespace", "SiteConfig", "Target", "load_target"]


class KvNamespace(BaseModel):
    """A KV namespace binding declared by the target."""

    model_config = ConfigDict(frozen=True)

    binding: str = ""
    id: str = ""


class SiteConfig(BaseModel):
    """Workers Sites settings: the local directory holding static assets."""

    model_config = ConfigDict(frozen=True)

    bucket: Path


class Target(BaseModel):
    """
    A Worker to preview.

    Targets are never mutated in place; derived variants are made with
    ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = ""
    account_id: str = ""
    main: Path = Path("index.js")
    kv_namespaces: list[KvNamespace] | None = Field(default=None, alias="kv-namespaces")
    site: SiteConfig | None = None

    def read_script(self) -> bytes:
        """Read the Worker script named by ``main``."""
        try:
            return self.main.read_bytes()
        except OSError as e:
            raise ConfigurationError(f"Could not read worker script {self.main}: {e}") from e


class GlobalUser(BaseModel):
    """Cloudflare credentials: an API token, or an email plus global API key."""

    model_config = ConfigDict(frozen=True)

    api_token: SecretStr | None = None
    email: str | None = None
    api_key: SecretStr | None = None

    @model_validator(mode="after")
    def _check_credentials(self) -> "GlobalUser":
        if self.api_token is None and not (self.email and self.api_key is not None):
            raise ValueError("Provide an API token, or both an email and an API key.")
        return self

    def auth_headers(self) -> dict[str, str]:
        """HTTP headers authenticating requests to the v4 API."""
        if self.api_token is not None:
            return {"Authorization": f"Bearer {self.api_token.get_secret_value()}"}
        assert self.email is not None and self.api_key is not None
        return {"X-Auth-Email": self.email, "X-Auth-Key": self.api_key.get_secret_value()}

    def client_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for constructing a Cloudflare SDK client."""
        if self.api_token is not None:
            return {"api_token": self.api_token.get_secret_value()}
        assert self.api_key is not None
        return {"api_email": self.email, "api_key": self.api_key.get_secret_value()}


def load_target(path: str | Path) -> Target:
    """
    Load a Target from a wrangler.toml-style file.

    Relative ``main`` and ``site.bucket`` paths are resolved against the
    directory holding the file.

    Raises:
        ConfigurationError: If the file cannot be read or does not describe a target.
    """
    file_path = Path(path)
    try:
        data = tomllib.loads(file_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found: {file_path}") from e
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Failed to read config file {file_path}: {e}") from e

    try:
        target = Target.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid target configuration in {file_path}: {e}") from e

    base = file_path.parent
    update: dict[str, Any] = {}
    if not target.main.is_absolute():
        update["main"] = base / target.main
    if target.site is not None and not target.site.bucket.is_absolute():
        update["site"] = SiteConfig(bucket=base / target.site.bucket)
    return target.model_copy(update=update) if update else target
