"""Configuration models and environment variable parsing for catalog sync."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, HttpUrl, field_validator

# Load environment variables from .env file if it exists
load_dotenv()

DEFAULT_BATCH_SIZE = 50
DEFAULT_CACHE_SIZE = 10_000
DEFAULT_PAGE_SIZE = 500

SUPPORTED_RESOURCES = (
    "states",
    "product_types",
    "categories",
    "products",
    "inventory_entries",
)


class PlatformConfig(BaseModel):
    """Connection settings for the target project."""

    project_key: str = Field(..., description="Key of the target project")
    client_id: str = Field(..., description="API client id")
    client_secret: str = Field(..., description="API client secret")
    auth_url: HttpUrl = Field(
        default="https://auth.europe-west1.gcp.commercetools.com",
        description="OAuth token endpoint base URL",
    )
    api_url: HttpUrl = Field(
        default="https://api.europe-west1.gcp.commercetools.com",
        description="Platform API base URL",
    )
    scopes: list[str] = Field(
        default_factory=list, description="OAuth scopes requested for the token"
    )

    @field_validator("project_key", "client_id", "client_secret")
    def validate_not_empty(cls, v: str) -> str:
        """Validate that credentials are not empty."""
        if not v or v.strip() == "":
            raise ValueError("Project key and client credentials cannot be empty")
        return v.strip()


class SyncConfig(BaseModel):
    """Configuration for sync behavior."""

    batch_size: int = Field(
        default=DEFAULT_BATCH_SIZE,
        description="Number of drafts processed per chunk (<= 0 uses the default)",
    )
    cache_size: int = Field(
        default=DEFAULT_CACHE_SIZE,
        description="Maximum number of key to id entries kept in the cache (<= 0 uses the default)",
    )
    page_size: int = Field(
        default=DEFAULT_PAGE_SIZE,
        ge=1,
        le=500,
        description="Number of keys per batched lookup or query page",
    )
    max_concurrent: int = Field(
        default=10, ge=1, le=50, description="Maximum number of chunks processed at once"
    )
    retry_attempts: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Number of transport retry attempts for transient failures",
    )
    retry_delay: float = Field(
        default=1.0,
        ge=0.1,
        le=30.0,
        description="Initial delay between transport retries in seconds",
    )
    allow_uuid_keys: bool = Field(
        default=False, description="Accept reference keys that look like UUIDs"
    )
    ensure_channels: bool = Field(
        default=False,
        description="Create missing inventory supply channels instead of deferring",
    )
    cleanup_older_than_days: int = Field(
        default=30,
        ge=1,
        description="Age after which unresolved reference records are cleaned up",
    )

    @field_validator("batch_size", mode="before")
    def default_batch_size(cls, v: int | None) -> int:
        """Fall back to the default batch size for non-positive values."""
        if v is None or int(v) <= 0:
            return DEFAULT_BATCH_SIZE
        return int(v)

    @field_validator("cache_size", mode="before")
    def default_cache_size(cls, v: int | None) -> int:
        """Fall back to the default cache size for non-positive values."""
        if v is None or int(v) <= 0:
            return DEFAULT_CACHE_SIZE
        return int(v)


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format (json or text)")

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @field_validator("format")
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in {"json", "text"}:
            raise ValueError("Log format must be 'json' or 'text'")
        return v.lower()


class Config(BaseModel):
    """Main configuration class for the catalog sync tool."""

    target: PlatformConfig
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    resources: list[str] = Field(
        default=["all"], description="List of resource kinds to sync"
    )

    model_config = {"validate_assignment": True}

    @field_validator("resources")
    def validate_resources(cls, v: list[str]) -> list[str]:
        """Validate the resource kind filter."""
        unknown = [r for r in v if r != "all" and r not in SUPPORTED_RESOURCES]
        if unknown:
            raise ValueError(
                f"Unknown resources: {', '.join(unknown)}. "
                f"Supported: all, {', '.join(SUPPORTED_RESOURCES)}"
            )
        return v

    def selected_resources(self) -> list[str]:
        """Return the resource kinds to sync in dependency order."""
        if "all" in self.resources:
            return list(SUPPORTED_RESOURCES)
        return [r for r in SUPPORTED_RESOURCES if r in self.resources]

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables.

        Returns:
            Config instance populated from environment variables.

        Raises:
            ValueError: If required environment variables are missing.
        """
        project_key = os.getenv("TARGET_PROJECT_KEY")
        client_id = os.getenv("TARGET_CLIENT_ID")
        client_secret = os.getenv("TARGET_CLIENT_SECRET")

        if not project_key:
            raise ValueError("TARGET_PROJECT_KEY environment variable is required")
        if not client_id:
            raise ValueError("TARGET_CLIENT_ID environment variable is required")
        if not client_secret:
            raise ValueError("TARGET_CLIENT_SECRET environment variable is required")

        target = {
            "project_key": project_key,
            "client_id": client_id,
            "client_secret": client_secret,
        }
        if os.getenv("TARGET_AUTH_URL"):
            target["auth_url"] = os.environ["TARGET_AUTH_URL"]
        if os.getenv("TARGET_API_URL"):
            target["api_url"] = os.environ["TARGET_API_URL"]
        scopes = os.getenv("TARGET_SCOPES", "")
        target["scopes"] = [s for s in scopes.split() if s]

        return cls(
            target=PlatformConfig(**target),
            sync=SyncConfig(
                batch_size=int(os.getenv("SYNC_BATCH_SIZE", str(DEFAULT_BATCH_SIZE))),
                cache_size=int(os.getenv("SYNC_CACHE_SIZE", str(DEFAULT_CACHE_SIZE))),
                page_size=int(os.getenv("SYNC_PAGE_SIZE", str(DEFAULT_PAGE_SIZE))),
                max_concurrent=int(os.getenv("SYNC_MAX_CONCURRENT", "10")),
                retry_attempts=int(os.getenv("SYNC_RETRY_ATTEMPTS", "3")),
                retry_delay=float(os.getenv("SYNC_RETRY_DELAY", "1.0")),
                allow_uuid_keys=os.getenv("SYNC_ALLOW_UUID_KEYS", "false").lower()
                in {"1", "true", "yes"},
                ensure_channels=os.getenv("SYNC_ENSURE_CHANNELS", "false").lower()
                in {"1", "true", "yes"},
                cleanup_older_than_days=int(os.getenv("SYNC_CLEANUP_DAYS", "30")),
            ),
            logging=LoggingConfig(
                level=os.getenv("LOG_LEVEL", "INFO"),
                format=os.getenv("LOG_FORMAT", "json"),
            ),
        )

    @classmethod
    def from_file(cls, config_path: Path) -> "Config":
        """Create configuration from a YAML or JSON file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Config instance populated from the file

        Raises:
            ValueError: If the file format is unsupported or required fields are missing
            FileNotFoundError: If the configuration file doesn't exist
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            config_data = load_document(config_path)
            return cls(**config_data)
        except ValueError:
            raise
        except Exception as e:
            raise ValueError(f"Failed to load configuration file: {e}") from e


def load_document(path: Path) -> dict:
    """Load a JSON or YAML document into a dictionary.

    Args:
        path: Path to a .json, .yaml or .yml file

    Returns:
        The parsed mapping

    Raises:
        ValueError: If the format is unsupported or the content is invalid
    """
    import json

    import yaml

    file_extension = path.suffix.lower()
    try:
        with open(path) as f:
            if file_extension == ".json":
                data = json.load(f)
            elif file_extension in [".yaml", ".yml"]:
                data = yaml.safe_load(f)
            else:
                raise ValueError(
                    f"Unsupported file format: {file_extension}. Supported formats: .json, .yaml, .yml"
                )
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at the top level of {path}")
    return data
