"""
Настройки приложения (из переменных окружения).
"""
import os

from pydantic import BaseModel


class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./dmscreen.sqlite3")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # сколько бросков держим в истории
    dice_history_limit: int = int(os.getenv("DICE_HISTORY_LIMIT", "50"))

    # роль, которой разрешено управлять любым боем
    admin_role: str = os.getenv("ADMIN_ROLE", "admin")


settings = Settings()
