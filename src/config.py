"""Application configuration using pydantic-settings.

This module handles configuration from environment variables, .env files, and config.yaml.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Optional
import yaml
from pathlib import Path
import sys


# Weak/default secrets that should never be used in production
INSECURE_DEFAULT_SECRETS = {
    "your-secret-key-change-this-in-production",
    "change-me",
    "changeme",
    "secret",
    "password",
    "default",
    "default_secret_please_change",
    "admin",
}


def _print_banner(*lines: str):
    rule = "=" * 80
    print(f"\n{rule}", file=sys.stderr)
    for line in lines:
        print(line, file=sys.stderr)
    print(f"{rule}\n", file=sys.stderr)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "template-vault"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"  # development, staging, production

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database - can be set directly or built from components
    database_url: Optional[str] = None
    database_echo: bool = False  # Log SQL queries

    # Database components (used if database_url not provided)
    postgres_db: str = "template_vault"
    postgres_user: str = "template_vault"
    postgres_password: str = "template_vault"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    @property
    def db_url(self) -> str:
        """Get database URL, constructing from components if not explicitly set."""
        if self.database_url:
            return self.database_url
        return f"postgresql://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    # Admin credential (single shared secret)
    admin_password: Optional[str] = None
    admin_password_hash: Optional[str] = None  # bcrypt hash, preferred over admin_password

    # JWT admin sessions
    jwt_secret_key: str = "your-secret-key-change-this-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret_key(cls, v: str) -> str:
        """Refuse weak default secrets; warn about short ones."""
        if v.lower().strip() in INSECURE_DEFAULT_SECRETS:
            _print_banner(
                "CRITICAL SECURITY ERROR: Weak or default JWT secret detected!",
                "Admin session tokens signed with a default secret can be forged,",
                "which would let anyone issue or delete access codes.",
                "",
                "Generate a strong random secret key and set it as JWT_SECRET_KEY:",
                "  python -c 'import secrets; print(secrets.token_urlsafe(32))'",
            )
            sys.exit(1)

        if len(v) < 32:
            _print_banner(
                "WARNING: JWT secret key is too short!",
                f"Current length: {len(v)} characters, recommended at least 32.",
            )

        return v

    # Redemption engine
    redemption_max_attempts: int = 3
    code_issue_max_attempts: int = 5

    # Lifecycle sweeping
    sweep_on_listing: bool = True
    sweep_interval_seconds: int = 0  # 0 disables the in-process sweeper

    # Audit log queries
    audit_log_default_limit: int = 100
    audit_log_max_limit: int = 1000

    # CORS
    cors_origins: list = ["http://localhost:3000", "http://localhost:5173"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list = ["*"]
    cors_allow_headers: list = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra environment variables (like POSTGRES_* used by docker-compose)
    )


def load_config_yaml(config_path: str = "config.yaml") -> dict:
    """Load configuration from YAML file if it exists."""
    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file, "r") as f:
            return yaml.safe_load(f) or {}
    return {}


# config.yaml section -> {yaml key: Settings field}
YAML_OVERRIDES = {
    "app": {
        "environment": "environment",
        "debug": "debug",
    },
    "api": {
        "host": "api_host",
        "port": "api_port",
    },
    "security": {
        "secret_key": "jwt_secret_key",
        "algorithm": "jwt_algorithm",
        "access_token_expire_minutes": "jwt_access_token_expire_minutes",
        "admin_password_hash": "admin_password_hash",
    },
    "redemption": {
        "max_attempts": "redemption_max_attempts",
        "sweep_on_listing": "sweep_on_listing",
        "sweep_interval_seconds": "sweep_interval_seconds",
    },
    "audit": {
        "default_limit": "audit_log_default_limit",
        "max_limit": "audit_log_max_limit",
    },
    "cors": {
        "origins": "cors_origins",
        "allow_credentials": "cors_allow_credentials",
        "allow_methods": "cors_allow_methods",
        "allow_headers": "cors_allow_headers",
    },
}


def create_settings() -> Settings:
    """Create settings instance with config.yaml overrides."""
    yaml_config = load_config_yaml()

    kwargs = {}

    db = yaml_config.get("database")
    if db:
        kwargs["database_url"] = db.get("url") or (
            f"postgresql://{db.get('user', 'template_vault')}:{db.get('password', 'template_vault')}"
            f"@{db.get('host', 'localhost')}:{db.get('port', 5432)}/{db.get('name', 'template_vault')}"
        )

    for section, fields in YAML_OVERRIDES.items():
        values = yaml_config.get(section) or {}
        for key, field in fields.items():
            if key in values:
                kwargs[field] = values[key]

    return Settings(**kwargs)


# Global settings instance
settings = create_settings()
