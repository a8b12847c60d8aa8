"""
Configuration management for the LCA stage engine.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in ("false", "0", "no", "off")


class Config:
    """Application configuration settings."""

    # Base paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    OUTPUT_DIR: Path = Path(os.getenv("OUTPUT_DIR", str(PROJECT_ROOT / "runs")))

    # Logging settings
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    # Per-module overrides, e.g. "lca_engine.stages.sensitivity=DEBUG,lca_engine.stages.provenance=WARNING"
    LOG_LEVELS: str = os.getenv("LOG_LEVELS", "")
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Estimation capability settings
    ESTIMATION_ENABLED: bool = _env_bool("AI_PREDICTION_ENABLED", "true")
    # AI_PREDICTION_TIMEOUT is expressed in milliseconds
    ESTIMATION_TIMEOUT_SECONDS: float = float(os.getenv("AI_PREDICTION_TIMEOUT", "30000")) / 1000.0
    ESTIMATION_PROVIDER: str = os.getenv("ESTIMATION_PROVIDER", "mock")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    # Sensitivity settings
    DEFAULT_RANDOM_SEED: int = int(os.getenv("RANDOM_SEED", "42"))
    SENSITIVITY_TRIALS: int = int(os.getenv("SENSITIVITY_TRIALS", "200"))
    SENSITIVITY_MAX_WORKERS: int = int(os.getenv("SENSITIVITY_MAX_WORKERS", str(os.cpu_count() or 1)))

    @classmethod
    def ensure_output_dir(cls) -> Path:
        """Ensure the run output directory exists."""
        cls.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
        return cls.OUTPUT_DIR
