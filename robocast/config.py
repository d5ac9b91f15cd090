"""Configuration - service settings"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
load_dotenv(override=True)


@dataclass
class Settings:
    """Service settings"""

    # Server
    host: str = "0.0.0.0"
    port: int = 8790
    debug: bool = False
    api_token: Optional[str] = None

    # Storage
    data_dir: Path = field(default_factory=lambda: Path.home() / ".robocast" / "data")
    robots_file: Path = field(default_factory=lambda: Path.home() / ".robocast" / "robots.yaml")

    # Delivery
    delivery_timeout: float = 30.0

    # Health
    failure_warning_threshold: int = 5

    @property
    def db_path(self) -> Path:
        return self.data_dir / "robocast.db"

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables"""
        return cls(
            # Server
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8790")),
            debug=os.getenv("ROBOCAST_DEBUG", "").lower() in ("1", "true"),
            api_token=os.getenv("ROBOCAST_API_TOKEN") or None,

            # Paths
            data_dir=Path(os.getenv(
                "ROBOCAST_DATA_DIR", str(Path.home() / ".robocast" / "data")
            )).expanduser(),
            robots_file=Path(os.getenv(
                "ROBOCAST_ROBOTS_FILE", str(Path.home() / ".robocast" / "robots.yaml")
            )).expanduser(),

            # Delivery
            delivery_timeout=float(os.getenv("ROBOCAST_DELIVERY_TIMEOUT", "30")),

            # Health
            failure_warning_threshold=int(os.getenv("ROBOCAST_FAILURE_WARNING_THRESHOLD", "5")),
        )


# Global settings instance, used by the console entry point
settings = Settings.from_env()
