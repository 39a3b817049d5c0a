"""Configuration management for the PDF organizer."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

# Load .env early so BaseSettings can pick values up seamlessly.
load_dotenv()

DEFAULT_NAME_PATTERN = "{date}_{id}_{subject}_{original_filename}"


class Settings(BaseSettings):
    """App configuration derived from environment variables."""

    client_config_path: Path = Field(Path("credentials.json"), alias="CLIENT_CONFIG_PATH")
    token_path: Path = Field(Path("token.json"), alias="TOKEN_PATH")
    auth_flow: Literal["local_callback", "manual"] = Field("local_callback", alias="AUTH_FLOW")
    callback_port: int = Field(8400, alias="CALLBACK_PORT")
    auth_timeout: float = Field(300.0, alias="AUTH_TIMEOUT")
    request_timeout: float = Field(30.0, alias="REQUEST_TIMEOUT")
    graph_page_size: int = Field(25, alias="GRAPH_PAGE_SIZE")
    graph_mail_folder: str | None = Field(None, alias="GRAPH_MAIL_FOLDER")
    output_dir: Path = Field(Path("output"), alias="OUTPUT_DIR")
    name_pattern: str = Field(DEFAULT_NAME_PATTERN, alias="NAME_PATTERN")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("graph_mail_folder", mode="before")
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value


class ClientConfig(BaseModel):
    """Registered application details read from the client config file."""

    client_id: str
    tenant_id: str = "consumers"
    authority: str | None = None
    client_secret: str | None = None
    scopes: list[str] = Field(default_factory=lambda: ["Mail.Read"])

    @field_validator("client_id")
    @classmethod
    def _require_client_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("client_id must not be empty")
        return value.strip()

    @property
    def authority_url(self) -> str:
        if self.authority:
            return self.authority.rstrip("/")
        return f"https://login.microsoftonline.com/{self.tenant_id}"


def load_settings() -> Settings:
    """Build Settings from the environment, reporting bad values as configuration errors."""
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid environment configuration: {exc}") from exc


def load_client_config(path: Path) -> ClientConfig:
    """Read and validate the client config JSON."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Unable to read client config file {path}: {exc}") from exc
    try:
        return ClientConfig.model_validate_json(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Unable to parse client config file {path}: {exc}") from exc
