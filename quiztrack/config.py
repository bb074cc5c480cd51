"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    DB_PATH: Path
    STORE_MAX_BYTES: int
    DATA_DIR: Path
    CATALOG_PATH: Path
    SESSION_CAP: int
    CLEANUP_MONTHS: int
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("QUIZTRACK_ENV", "dev").lower()
        self.DB_PATH = Path(os.getenv("QUIZTRACK_DB_PATH", str(BASE / "quiztrack.db")))
        # 0 disables the byte budget on the local store
        self.STORE_MAX_BYTES = int(os.getenv("QUIZTRACK_STORE_MAX_BYTES", "0"))
        self.DATA_DIR = Path(os.getenv("QUIZTRACK_DATA_DIR", str(BASE / "data")))
        self.CATALOG_PATH = Path(os.getenv("QUIZTRACK_CATALOG_PATH", str(self.DATA_DIR / "catalog.json")))
        self.SESSION_CAP = int(os.getenv("QUIZTRACK_SESSION_CAP", "100"))
        self.CLEANUP_MONTHS = int(os.getenv("QUIZTRACK_CLEANUP_MONTHS", "6"))
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.SESSION_CAP < 1:
            raise RuntimeError("QUIZTRACK_SESSION_CAP must be >= 1")
        if self.STORE_MAX_BYTES < 0:
            raise RuntimeError("QUIZTRACK_STORE_MAX_BYTES must be >= 0")


settings = Settings()
