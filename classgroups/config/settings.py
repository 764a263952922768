# classgroups/config/settings.py

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    GROUP_SIZE_DEFAULT: int = 4
    GROUP_SIZE_MIN: int = 2
    GROUP_SIZE_MAX: int = 10
    MAX_ATTEMPTS_BASIC: int = 1
    MAX_ATTEMPTS_ADVANCED: int = 32
    SEPARATION_REPAIR_FACTOR: int = 2
    OPERATION_MIN_INTERVAL_SECONDS: float = 5.0
    BACKUP_REMINDER_DAYS: int = 7

    class Config:
        env_file = ".env"
        env_prefix = "CLASSGROUPS_"

settings = Settings()
