import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings:
    @staticmethod
    def _get_int(name: str, default: int) -> int:
        return int(os.getenv(name, str(default)))

    @property
    def BASE_URL(self) -> str:
        return os.getenv("BASE_URL", "http://localhost:8000")

    @property
    def SERVER_URL(self) -> str:
        return os.getenv("SERVER_URL", self.BASE_URL)

    @property
    def CLIENT_URL(self) -> str:
        return os.getenv("CLIENT_URL", "http://localhost:5173")

    @property
    def DATABASE_URL(self) -> str:
        database_url = os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            raise ValueError("DATABASE_URL is required")
        return database_url

    @property
    def DB_CONNECT_RETRIES(self) -> int:
        return self._get_int("DB_CONNECT_RETRIES", 5)

    @property
    def DB_CONNECT_RETRY_DELAY_SECONDS(self) -> int:
        return self._get_int("DB_CONNECT_RETRY_DELAY_SECONDS", 2)

    @property
    def JWT_SECRET(self) -> str:
        return os.getenv("JWT_SECRET", "change-me-in-production")

    @property
    def JWT_ALGORITHM(self) -> str:
        return os.getenv("JWT_ALGORITHM", "HS256")

    @property
    def JWT_EXPIRE_MINUTES(self) -> int:
        return self._get_int("JWT_EXPIRE_MINUTES", 60)

    @property
    def STRIPE_SECRET_KEY(self) -> str:
        return os.getenv("STRIPE_SECRET_KEY", "")

    @property
    def STRIPE_WEBHOOK_SECRET(self) -> str:
        return os.getenv("STRIPE_WEBHOOK_SECRET", "")

    @property
    def STRIPE_CURRENCY(self) -> str:
        return os.getenv("STRIPE_CURRENCY", "usd").lower()

    @property
    def PAYMENT_SESSION_TIMEOUT_SECONDS(self) -> int:
        return self._get_int("PAYMENT_SESSION_TIMEOUT_SECONDS", 15)

    @property
    def PLATFORM_FEE_PERCENTAGE(self) -> Decimal:
        return Decimal(os.getenv("PLATFORM_FEE_PERCENTAGE", "3"))

    @property
    def ADMIN_EMAIL(self) -> str:
        return os.getenv("ADMIN_EMAIL", "").strip().lower()

    @property
    def ORDER_NUMBER_PREFIX(self) -> str:
        return os.getenv("ORDER_NUMBER_PREFIX", "ORD")

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")


settings = Settings()


def get_settings() -> Settings:
    return settings


# Validate critical settings
if settings.JWT_SECRET == "change-me-in-production":
    import warnings
    warnings.warn("JWT_SECRET is using default value. Change it in production!", UserWarning)
