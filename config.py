"""Configuration management using Pydantic settings"""

import platform
import os
from pathlib import Path
from pydantic_settings import BaseSettings
from typing import Optional


def get_default_storage_path() -> str:
    """
    Get OS-specific default storage path for Hig Clean Tec.

    Returns:
        - macOS: ~/Library/Application Support/HigCleanTec
        - Linux: ~/.local/share/higcleantec
        - Windows: %APPDATA%/HigCleanTec
    """
    system = platform.system()
    home = Path.home()

    if system == "Darwin":  # macOS
        return str(home / "Library" / "Application Support" / "HigCleanTec")
    elif system == "Windows":
        # Use APPDATA environment variable, fallback to home
        appdata = os.environ.get("APPDATA")
        if appdata:
            return str(Path(appdata) / "HigCleanTec")
        return str(home / "AppData" / "Roaming" / "HigCleanTec")
    else:  # Linux and others
        # Follow XDG Base Directory specification
        xdg_data = os.environ.get("XDG_DATA_HOME")
        if xdg_data:
            return str(Path(xdg_data) / "higcleantec")
        return str(home / ".local" / "share" / "higcleantec")


class Settings(BaseSettings):
    """Application settings"""

    # Storage paths - use OS-specific default unless overridden via env
    STORAGE_DIR: str = get_default_storage_path()

    # Derived path (computed from STORAGE_DIR when not set)
    ENTITLEMENT_DIR: Optional[str] = None

    # "file" persists to ENTITLEMENT_DIR, "memory" keeps everything in-process
    STORAGE_BACKEND: str = "file"

    # Logging
    LOG_LEVEL: str = "INFO"

    APP_ENV: str = "development"

    class Config:
        env_file = ".env"
        case_sensitive = True

    def model_post_init(self, __context) -> None:
        """Initialize derived paths after model creation"""
        self._update_derived_paths()

    def _update_derived_paths(self) -> None:
        """Update derived paths based on STORAGE_DIR"""
        # Only set if not explicitly configured via env
        if self.ENTITLEMENT_DIR is None:
            object.__setattr__(self, 'ENTITLEMENT_DIR', str(Path(self.STORAGE_DIR) / "entitlements"))

    def create_directories(self):
        """Create necessary directories"""
        if self.STORAGE_BACKEND != "file":
            return
        for dir_path in [self.STORAGE_DIR, self.ENTITLEMENT_DIR]:
            if dir_path:
                Path(dir_path).mkdir(parents=True, exist_ok=True)

    def get_storage_info(self) -> dict:
        """Get storage path information for API"""
        return {
            "storage_path": self.STORAGE_DIR,
            "entitlement_path": self.ENTITLEMENT_DIR,
            "backend": self.STORAGE_BACKEND,
            "default_path": get_default_storage_path(),
            "is_default": self.STORAGE_DIR == get_default_storage_path(),
            "platform": platform.system(),
        }

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"


# Global settings instance
settings = Settings()
