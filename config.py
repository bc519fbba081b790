from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # EMPL production database, queried live on every request.
    empl_database_url: Optional[str] = None

    # EHI mirror (PostgreSQL) written by the sync job.
    ehi_database_url: Optional[str] = None

    # EHI SQL Server, only reachable from the sync job.
    ehi_sql_host: Optional[str] = None
    ehi_sql_port: int = 1433
    ehi_sql_user: Optional[str] = None
    ehi_sql_password: Optional[str] = None
    ehi_sql_database: Optional[str] = None
    ehi_sql_driver: str = "ODBC Driver 18 for SQL Server"
    ehi_sql_connect_timeout_seconds: int = 30
    ehi_sql_query_timeout_seconds: int = 300

    # Sync tuning
    ehi_batch_size: int = 200
    ehi_unit_fetch_size: int = 5000
    mirror_insert_batch_size: int = 1000
    sync_lease_minutes: int = 90
    sync_stale_after_hours: float = 2.0

    # Request-time queries
    source_query_timeout_seconds: float = 30.0

    # Open-ops document
    ops_sequence_pattern: str = r"[A-Za-z]+-\d+-(\d+)"
    ops_column_pattern: str = r"EM-\d{2}-\d+"

    app_shared_secret: Optional[str] = None
    log_level: str = "INFO"

    @property
    def ehi_sql_configured(self) -> bool:
        return all([self.ehi_sql_host, self.ehi_sql_user, self.ehi_sql_password, self.ehi_sql_database])


settings = Settings()
