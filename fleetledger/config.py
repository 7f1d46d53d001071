# fleetledger/config.py
from pydantic_settings import BaseSettings
from pydantic import computed_field


class Settings(BaseSettings):
    # Optional MySQL credentials; when all are set they take precedence
    mysql_user: str | None = None
    mysql_password: str | None = None
    mysql_host: str | None = None
    mysql_db: str | None = None

    database_url: str = "sqlite:///./fleetledger.db"

    # App secrets
    secret_key: str | None = None  # Primary secret
    session_secret: str | None = None  # Optional legacy/alt secret

    # Entitlements
    admin_emails: str = ""  # comma-separated, e.g. "a@x.com,b@x.com"
    trial_days: int = 15

    # Financials
    default_fuel_price: float = 100.0

    log_level: str = "INFO"

    @computed_field
    @property
    def sqlalchemy_url(self) -> str:
        if self.mysql_user and self.mysql_host and self.mysql_db:
            # Use mysqlclient (MySQLdb) driver
            return (
                f"mysql+mysqldb://{self.mysql_user}:{self.mysql_password or ''}"
                f"@{self.mysql_host}/{self.mysql_db}?charset=utf8mb4"
            )
        return self.database_url

    @property
    def session_key(self) -> str:
        """
        Unified session secret.
        - If SECRET_KEY is set, use it.
        - Otherwise fall back to SESSION_SECRET.
        - If neither is set, fall back to a dev default.
        """
        return (
            self.secret_key
            or self.session_secret
            or "dev-secret-change-me"
        )

    @property
    def admin_email_list(self) -> list[str]:
        return [a.strip().lower() for a in self.admin_emails.split(",") if a.strip()]

    def is_admin_email(self, email: str | None) -> bool:
        if not email:
            return False
        return email.strip().lower() in self.admin_email_list

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
