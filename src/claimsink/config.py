from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process configuration, read once at startup from CLAIMSINK_* environment
    variables (or a .env file) and passed into the pipeline as a frozen value.

    Required: CLAIMSINK_LOTUS_URL, CLAIMSINK_DATABASE_URL.
    """

    model_config = SettingsConfigDict(
        env_prefix="CLAIMSINK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Lotus full node
    lotus_url: str
    lotus_token: str = Field(default="", repr=False)
    rpc_timeout_s: float = 30.0

    # PostgreSQL
    database_url: str = Field(repr=False)
    claims_table: str = "claims"
    db_command_timeout_s: float = 300.0

    # Ingestion
    dump_dir: str = ""
    batch_size: int = Field(default=2_000, ge=1)
    run_every_hours: float = 1.0
    stable_check_interval_s: float = Field(default=5.0, ge=0)
    stable_check_retries: int = Field(default=3, ge=1)
    skip_malformed_records: bool = False
    manifest_path: str = ""

    log_level: str = "INFO"

    @field_validator("run_every_hours", mode="after")
    @classmethod
    def default_interval(cls, v: float) -> float:
        """Non-positive intervals fall back to hourly runs."""
        return v if v > 0 else 1.0

    @field_validator("log_level", mode="after")
    @classmethod
    def upper_level(cls, v: str) -> str:
        return v.upper()

    @property
    def run_interval_s(self) -> float:
        return self.run_every_hours * 3600.0

    def public_view(self) -> dict[str, object]:
        """Settings safe to log (credentials omitted)."""
        return self.model_dump(exclude={"lotus_token", "database_url"})
