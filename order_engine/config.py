import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Database
    POSTGRES_CONNECTION_STRING: str = os.getenv(
        "POSTGRES_CONNECTION_STRING", "sqlite+aiosqlite:///./orders.db"
    )
    CREATE_TABLES_ON_STARTUP: bool = os.getenv("CREATE_TABLES_ON_STARTUP", "true").lower() == "true"

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Orders
    TAX_RATE: Decimal = Decimal(os.getenv("TAX_RATE", "0.10"))
    ORDER_NUMBER_PREFIX: str = os.getenv("ORDER_NUMBER_PREFIX", "ORD")
    MAX_ORDER_LINES: int = int(os.getenv("MAX_ORDER_LINES", "50"))
    MAX_LINE_QUANTITY: int = int(os.getenv("MAX_LINE_QUANTITY", "100"))
    MAX_BULK_ITEMS: int = int(os.getenv("MAX_BULK_ITEMS", "50"))
    MAX_PAGE_SIZE: int = int(os.getenv("MAX_PAGE_SIZE", "100"))

    @property
    def DATABASE_URL(self) -> str:
        """Async URL for the application"""
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql+asyncpg://")

    @property
    def SYNC_DATABASE_URL(self) -> str:
        """Sync URL for Alembic"""
        return (
            self.POSTGRES_CONNECTION_STRING
            .replace("postgres://", "postgresql://")
            .replace("sqlite+aiosqlite://", "sqlite://")
        )


settings = Settings()
