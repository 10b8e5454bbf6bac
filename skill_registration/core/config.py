from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
from typing import Optional

class Settings(BaseSettings):
    """
    Application-wide settings managed by Pydantic.
    Reads configuration from environment variables and .env files.
    """
    # General project metadata
    PROJECT_NAME: str = "Skill Registration"
    API_V1_STR: str = "/api"
    LOG_LEVEL: str = "INFO"

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lower-case level names from the environment."""
        return v.upper()

    # Catalog Configuration
    # GraphQL endpoint receiving the registerSkill mutation
    CATALOG_GRAPHQL_URL: str = "https://automation.atomist.com/graphql"
    # Bearer token used for both the catalog and the event stream
    CATALOG_API_TOKEN: Optional[str] = None
    # Transact endpoint for deployment-stream records
    # When unset the stream step is skipped with a warning
    EVENT_STREAM_URL: Optional[str] = None

    # GitHub Configuration
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_URL: str = "https://github.com"
    # Fallback token when the event carries no installation token
    GITHUB_TOKEN: Optional[str] = None

    # Default descriptor values
    # Commits from the reserved organization are published under a fixed identity
    RESERVED_ORG: str = "atomist-skills"
    RESERVED_NAMESPACE: str = "atomist"
    RESERVED_AUTHOR: str = "Atomist"
    DEFAULT_LICENSE: str = "Apache-2.0"

    # Canonical image registry
    # Images already below this host/prefix are referenced in place
    CANONICAL_REGISTRY_HOST: str = "gcr.io"
    CANONICAL_REPOSITORY_PREFIX: str = "atomist-container-skills/"
    CANONICAL_SERVICE_ACCOUNT: str = (
        "atomist-gcr-analysis@atomist-container-skills.iam.gserviceaccount.com"
    )

    # External tools
    IMAGE_ANALYZE_COMMAND: str = "container-diff"
    IMAGE_COPY_COMMAND: str = "skopeo"
    GIT_COMMAND: str = "git"
    # Mints per-account access tokens for registries identified by a service account
    GCLOUD_COMMAND: str = "gcloud"

    # Always resolve the descriptor from the source repository
    PREFER_REPOSITORY_DESCRIPTOR: bool = False

    # Git tag authorship
    TAGGER_NAME: str = "Atomist Bot"
    TAGGER_EMAIL: str = "bot@atomist.com"

    # Optional Redis backing for the copied-artifact cache
    REDIS_URL: Optional[str] = None

    # Shared secret expected in X-Webhook-Secret on event requests
    WEBHOOK_SECRET: Optional[str] = None

    @model_validator(mode='after')
    def validate_canonical_registry(self) -> 'Settings':
        """
        Validate that the canonical repository prefix is a path prefix.
        """
        if not self.CANONICAL_REPOSITORY_PREFIX.endswith("/"):
            raise ValueError(
                f"CANONICAL_REPOSITORY_PREFIX must end with '/', got: {self.CANONICAL_REPOSITORY_PREFIX}"
            )
        return self

    # Pydantic Configuration
    model_config = SettingsConfigDict(
        env_file=".env",              # Load variables from .env file
        env_file_encoding="utf-8",    # Ensure correct encoding
        case_sensitive=True,          # Environment variables are case-sensitive
        extra="ignore"                # Ignore extra fields in .env not defined here
    )

# Instantiate the settings object to be imported elsewhere
settings = Settings()
