import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    # Application
    app_name: str = os.getenv("APP_NAME", "Shelfs")
    log_level: str = os.getenv("LOG_LEVEL", "WARNING")

    # Snapshot storage
    data_dir: str = os.getenv("LIBRARY_DATA_DIR", "data")

    # Circulation rules
    loan_period_days: int = int(os.getenv("LOAN_PERIOD_DAYS", "14"))
    max_active_loans: int = int(os.getenv("MAX_ACTIVE_LOANS", "2"))

    # API
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))


settings = Settings()
