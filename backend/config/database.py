"""
Configuration module for the Persona Reputation Ledger
"""

import os
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

CONFIG_DIR = Path(__file__).parent


@dataclass
class PostgreSQLConfig:
    """PostgreSQL database configuration"""
    host: str
    port: int
    database: str
    user: str
    password: str
    schema: str = "personas"

    # Connection pool settings
    pool_min_size: int = 2
    pool_max_size: int = 10
    pool_max_inactive_connection_lifetime: float = 300.0

    # Retry settings
    max_retries: int = 3
    retry_delay: float = 1.0
    retry_backoff: float = 2.0

    # Query settings
    command_timeout: float = 60.0

    @classmethod
    def from_env(cls) -> 'PostgreSQLConfig':
        """Create configuration from environment variables"""
        return cls(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=int(os.getenv("POSTGRES_PORT", "5432")),
            database=os.getenv("POSTGRES_DB", "persona_ledger"),
            user=os.getenv("POSTGRES_USER", "ledger_user"),
            password=os.getenv("POSTGRES_PASSWORD", ""),
            schema=os.getenv("POSTGRES_SCHEMA", "personas"),

            pool_min_size=int(os.getenv("DB_POOL_MIN_SIZE", "2")),
            pool_max_size=int(os.getenv("DB_POOL_MAX_SIZE", "10")),
            pool_max_inactive_connection_lifetime=float(
                os.getenv("DB_POOL_MAX_INACTIVE_LIFETIME", "300.0")
            ),

            max_retries=int(os.getenv("DB_MAX_RETRIES", "3")),
            retry_delay=float(os.getenv("DB_RETRY_DELAY", "1.0")),
            retry_backoff=float(os.getenv("DB_RETRY_BACKOFF", "2.0")),

            command_timeout=float(os.getenv("DB_COMMAND_TIMEOUT", "60.0"))
        )

    def get_connection_string(self) -> str:
        """Get PostgreSQL connection string"""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"

    def get_pool_config(self) -> Dict[str, Any]:
        """Get asyncpg pool configuration"""
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "password": self.password,
            "min_size": self.pool_min_size,
            "max_size": self.pool_max_size,
            "max_inactive_connection_lifetime": self.pool_max_inactive_connection_lifetime,
            "command_timeout": self.command_timeout
        }


@dataclass
class ReputationConfig:
    """Quota, retry and catalog settings for the reputation core"""
    quota_window_hours: float = 24.0
    wtf_quota_daily: int = 3
    default_kudos_quota_daily: int = 5
    activity_history_limit: int = 50
    action_history_limit: int = 100

    # Whole-event retry settings for transient persistence failures
    event_max_retries: int = 3
    event_retry_delay: float = 0.05
    event_retry_backoff: float = 2.0

    scoring_rules_path: Path = CONFIG_DIR / "scoring_rules.yaml"
    template_catalog_path: Path = CONFIG_DIR / "default_templates.yaml"

    @classmethod
    def from_env(cls) -> 'ReputationConfig':
        """Create configuration from environment variables"""
        return cls(
            quota_window_hours=float(os.getenv("QUOTA_WINDOW_HOURS", "24")),
            wtf_quota_daily=int(os.getenv("WTF_QUOTA_DAILY", "3")),
            default_kudos_quota_daily=int(os.getenv("DEFAULT_KUDOS_QUOTA_DAILY", "5")),
            activity_history_limit=int(os.getenv("ACTIVITY_HISTORY_LIMIT", "50")),
            action_history_limit=int(os.getenv("ACTION_HISTORY_LIMIT", "100")),
            event_max_retries=int(os.getenv("EVENT_MAX_RETRIES", "3")),
            event_retry_delay=float(os.getenv("EVENT_RETRY_DELAY", "0.05")),
            event_retry_backoff=float(os.getenv("EVENT_RETRY_BACKOFF", "2.0")),
            scoring_rules_path=Path(
                os.getenv("SCORING_RULES_PATH", str(CONFIG_DIR / "scoring_rules.yaml"))
            ),
            template_catalog_path=Path(
                os.getenv("TEMPLATE_CATALOG_PATH", str(CONFIG_DIR / "default_templates.yaml"))
            )
        )


class AppConfig:
    """Main configuration class"""

    def __init__(self, postgresql: Optional[PostgreSQLConfig] = None,
                 reputation: Optional[ReputationConfig] = None):
        self.postgresql = postgresql or PostgreSQLConfig.from_env()
        self.reputation = reputation or ReputationConfig.from_env()
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def is_configured(self) -> bool:
        """Check if the database configuration is usable"""
        return all([
            self.postgresql.password,
            self.postgresql.host
        ])

    def get_health_check_config(self) -> Dict[str, Any]:
        """Get configuration for health checks"""
        return {
            "postgresql": {
                "host": self.postgresql.host,
                "port": self.postgresql.port,
                "database": self.postgresql.database,
                "schema": self.postgresql.schema
            },
            "quota_window_hours": self.reputation.quota_window_hours
        }


# Global configuration instance
app_config = AppConfig()
