# Runtime settings for PixelVault
#
# Values come from environment variables; a `.env` file in the working
# directory is loaded first (python-dotenv) without overriding variables that
# are already set.

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Secrets shorter than this are rejected as WeakSecret.
MIN_SECRET_LENGTH = 6

# Largest ciphertext blob accepted by the entry store (50 MiB).
MAX_CIPHERTEXT_BYTES = 50 * 1024 * 1024

_DEFAULT_ORIGINS = [
    "http://localhost:3000", "http://127.0.0.1:3000",
    "http://localhost:8000", "http://127.0.0.1:8000",
]


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass
class Settings:
    """Tunable parameters for the stores, the cipher and the API."""

    db_path: Path = Path("data/pixelvault.db")
    session_ttl_seconds: int = 24 * 60 * 60
    bcrypt_rounds: int = 12
    kdf_iterations: int = 600_000
    audit_dir: Path = Path("audit_logs")
    cors_origins: List[str] = field(default_factory=lambda: list(_DEFAULT_ORIGINS))

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        """Build settings from PIXELVAULT_* environment variables."""
        load_dotenv(dotenv_path, override=False)

        origins_raw = os.environ.get("PIXELVAULT_CORS_ORIGINS", "")
        origins = [o.strip() for o in origins_raw.split(",") if o.strip()]

        return cls(
            db_path=Path(os.environ.get("PIXELVAULT_DB_PATH", "data/pixelvault.db")),
            session_ttl_seconds=_env_int("PIXELVAULT_SESSION_TTL", 24 * 60 * 60),
            bcrypt_rounds=_env_int("PIXELVAULT_BCRYPT_ROUNDS", 12),
            kdf_iterations=_env_int("PIXELVAULT_KDF_ITERATIONS", 600_000),
            audit_dir=Path(os.environ.get("PIXELVAULT_AUDIT_DIR", "audit_logs")),
            cors_origins=origins or list(_DEFAULT_ORIGINS),
        )


# ── Singleton ────────────────────────────────────────────────────────

_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the process-wide settings."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def set_settings(settings: Optional[Settings]) -> None:
    """Replace the singleton (for testing)."""
    global _settings
    _settings = settings
