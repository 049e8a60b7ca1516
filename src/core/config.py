import os
from pathlib import Path
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent.parent  # go up to project root
env_path = BASE_DIR / ".env.development"

load_dotenv(env_path)


def _as_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    PORT: int = int(os.getenv("PORT") or 8000)
    DEBUG: bool = _as_bool(os.getenv("DEBUG", "false"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DB: str = os.getenv("MONGO_DB", "videotube_db")

    # upload provider credentials
    AWS_S3_BUCKET: str = os.getenv("AWS_S3_BUCKET")
    AWS_ACCESS_KEY_ID: str = os.getenv("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY: str = os.getenv("AWS_SECRET_ACCESS_KEY")
    AWS_REGION: str = os.getenv("AWS_REGION", "us-east-1")
    S3_PUBLIC_BASE_URL: str = os.getenv("S3_PUBLIC_BASE_URL")

    UPLOAD_TIMEOUT_SECONDS: float = float(os.getenv("UPLOAD_TIMEOUT_SECONDS", "120"))
    TEMP_UPLOAD_DIR: str = os.getenv("TEMP_UPLOAD_DIR", str(BASE_DIR / "public" / "temp"))

settings = Settings()
