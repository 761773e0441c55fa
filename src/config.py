import os
from pathlib import Path

from src.config_schema import Settings

settings_path = Path(os.getenv("SETTINGS_PATH", "settings.yaml"))
settings: Settings = Settings.from_yaml(settings_path) if settings_path.exists() else Settings()
