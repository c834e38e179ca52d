"""
Pipeline Configuration

Loads runtime settings from environment variables.

Environment Variables:
    OPENAI_API_KEY: Credentials for both external services
    CLASSIFICATION_MODEL: Model used for batch classification (default: gpt-4o-mini)
    SYNTHESIS_MODEL: Model used for the narrative report (default: gpt-4o)
    CLASSIFICATION_BATCH_SIZE: Files per classification request (default: 10)
    MEDICHRONICLE_DATA_DIR: Where the document store and profile live
        (default: ~/.medichronicle)
    MEDICHRONICLE_LOG_LEVEL: Logging level for the CLI (default: INFO)
    EXPORT_COMPRESSION_THRESHOLD: Document count above which exported
        appendix images use the coarse setting (default: 50)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


def _default_data_dir() -> Path:
    return Path.home() / ".medichronicle"


@dataclass
class ChronicleConfig:
    """Configuration for the document pipeline."""

    api_key: str | None = None
    classification_model: str = "gpt-4o-mini"
    synthesis_model: str = "gpt-4o"
    batch_size: int = 10
    data_dir: Path = field(default_factory=_default_data_dir)
    log_level: str = "INFO"
    compression_threshold: int = 50

    # Payload normalization
    max_image_width: int = 1000
    max_image_height: int = 1400
    jpeg_quality: int = 75

    @property
    def database_path(self) -> Path:
        return self.data_dir / "documents.sqlite3"

    @property
    def profile_path(self) -> Path:
        return self.data_dir / "profile.json"

    @classmethod
    def from_env(cls) -> "ChronicleConfig":
        """Load config from environment variables."""
        data_dir = os.environ.get("MEDICHRONICLE_DATA_DIR")
        return cls(
            api_key=os.environ.get("OPENAI_API_KEY") or None,
            classification_model=os.environ.get("CLASSIFICATION_MODEL", "gpt-4o-mini"),
            synthesis_model=os.environ.get("SYNTHESIS_MODEL", "gpt-4o"),
            batch_size=int(os.environ.get("CLASSIFICATION_BATCH_SIZE", "10")),
            data_dir=Path(data_dir).expanduser() if data_dir else _default_data_dir(),
            log_level=os.environ.get("MEDICHRONICLE_LOG_LEVEL", "INFO").upper(),
            compression_threshold=int(os.environ.get("EXPORT_COMPRESSION_THRESHOLD", "50")),
        )


# Global config singleton
_config: ChronicleConfig | None = None


def get_config() -> ChronicleConfig:
    """Get the global config (lazy-loaded from env)."""
    global _config
    if _config is None:
        _config = ChronicleConfig.from_env()
    return _config


def reset_config() -> None:
    """Reset config (useful for testing)."""
    global _config
    _config = None
