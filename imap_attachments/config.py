"""Configuration loaded once from environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
All models are frozen: the root :class:`Settings` is built at process
start and handed to each component constructor.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings

from .models import SearchCriteria
from .postprocess import split_template

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class ImapConfig(BaseSettings):
    """IMAP server connection settings."""

    model_config = {"env_prefix": "IMAP_", "frozen": True, "populate_by_name": True}

    server: str = Field(description="IMAP server as host or host:port")
    port: int = Field(default=993, description="Port used when the server has none")
    use_ssl: bool = Field(default=True, description="Use SSL/TLS connection")
    folder: str = Field(default="INBOX", description="IMAP folder to select")
    read_only: bool = Field(
        default=True,
        validation_alias=AliasChoices("IMAP_READ_ONLY", "READ_ONLY"),
        description="Open the folder read-only (EXAMINE) so fetched mail stays unseen",
    )
    username: str = Field(
        validation_alias="EMAIL_USERNAME",
        description="IMAP login username",
    )
    password: SecretStr = Field(
        validation_alias="EMAIL_PASSWORD",
        description="IMAP login password",
    )

    @field_validator("server", "username")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @property
    def address(self) -> tuple[str, int]:
        """``(host, port)`` with the port taken from ``server`` when given."""
        host, sep, port = self.server.rpartition(":")
        if sep and port.isdigit() and host and not host.endswith(":"):
            return host.strip("[]"), int(port)
        return self.server, self.port


class SearchConfig(BaseSettings):
    """Message selection filters."""

    model_config = {"frozen": True}

    unseen_only: bool = Field(default=True, description="Only select unseen messages")
    subject_filter: str = Field(default="", description="Subject substring filter")
    sender_filter: str = Field(default="", description="From substring filter")

    def criteria(self) -> SearchCriteria:
        return SearchCriteria(
            unseen_only=self.unseen_only,
            subject_contains=self.subject_filter,
            sender_contains=self.sender_filter,
        )


class Settings(BaseSettings):
    """Root configuration for one run.

    Nested configs are populated from their own env vars.
    """

    model_config = {"frozen": True}

    output_dir: Path = Field(default=Path("output"), description="Attachment destination")
    attachment_types: str = Field(
        default="application/pdf",
        description="Comma-separated content types to extract",
    )
    command: str = Field(
        default="stat '%s'",
        description="Shell command run per saved file; %s is the file path",
    )
    output_policy: Literal["inherit", "capture"] | None = Field(
        default=None,
        description="inherit: command shares our stdout; capture: output goes to <file>.out",
    )
    on_message_error: Literal["stop", "continue"] = Field(
        default="stop",
        description="Whether an unreadable message ends the run or is skipped",
    )
    strict_names: bool = Field(
        default=False,
        description="Warn about allow-listed parts that have no usable filename",
    )
    queue_size: int = Field(default=10, ge=1, description="Fetched messages buffered ahead")
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING or ERROR")
    log_json: bool = Field(default=True, description="JSON log lines instead of console output")

    imap: ImapConfig = Field(default_factory=ImapConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)

    @field_validator("command")
    @classmethod
    def _single_placeholder(cls, value: str) -> str:
        if value:
            split_template(value)
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level == "WARN":
            level = "WARNING"
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("attachment_types")
    @classmethod
    def _has_types(cls, value: str) -> str:
        if not any(item.strip() for item in value.split(",")):
            raise ValueError("at least one attachment type is required")
        return value

    @property
    def allowed_types(self) -> frozenset[str]:
        return frozenset(
            item.strip().lower() for item in self.attachment_types.split(",") if item.strip()
        )

    @property
    def capture_output(self) -> bool:
        """Whether command output is captured into a sidecar file."""
        if self.output_policy is None:
            return self.log_level == "DEBUG"
        return self.output_policy == "capture"
