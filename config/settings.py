import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent

# Paths
DATA_DIR = BASE_DIR / "data"
UPLOAD_TMP_DIR = BASE_DIR / "uploads"

# Object store namespaces
DEDUCTION_DOCUMENTS = "DEDUCTION_DOCUMENTS"
ADMIN_DEDUCTION_DOCUMENTS = "ADMIN_DEDUCTION_DOCUMENTS"
AGREEMENT_DOCUMENTS = "AGREEMENT_DOCUMENTS"

EXPORT_FILENAME = "all_deductions.xlsx"
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once at startup and passed explicitly"""
    database_url: str = f"sqlite:///{DATA_DIR / 'deductions.db'}"
    upload_tmp_dir: Path = UPLOAD_TMP_DIR
    debug: bool = False
    log_level: str = "INFO"
    secret_key: str = "change-me"
    max_upload_bytes: int = 16 * 1024 * 1024  # 16MB max file size
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    strict_entry_amounts: bool = False

    @property
    def object_store_configured(self) -> bool:
        return bool(self.cloudinary_cloud_name and self.cloudinary_api_key and self.cloudinary_api_secret)


def load_settings() -> Settings:
    """Read settings from the environment (and .env, loaded above)"""
    return Settings(
        database_url=os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'deductions.db'}"),
        upload_tmp_dir=Path(os.getenv("UPLOAD_TMP_DIR", str(UPLOAD_TMP_DIR))),
        debug=_env_bool("DEBUG", "False"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        secret_key=os.getenv("SECRET_KEY", "change-me"),
        max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(16 * 1024 * 1024))),
        cloudinary_cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME", ""),
        cloudinary_api_key=os.getenv("CLOUDINARY_API_KEY", ""),
        cloudinary_api_secret=os.getenv("CLOUDINARY_API_SECRET", ""),
        strict_entry_amounts=_env_bool("STRICT_ENTRY_AMOUNTS", "False"),
    )
