from pathlib import Path
import os

from dotenv import load_dotenv

# Ensure we load the project .env no matter where uvicorn is started from
BASE_DIR = Path(__file__).resolve().parent.parent.parent  # core/ -> studygroup/ -> project root
load_dotenv(BASE_DIR / ".env")


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./studygroup.db")
SQL_ECHO = _flag("SQL_ECHO", "false")

SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    raise RuntimeError(f"SECRET_KEY is missing. Expected in: {BASE_DIR / '.env'}")

ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

SEED_COURSES = _flag("SEED_COURSES", "true")

# Accounts with these emails get the "admin" role (catalog management)
ADMIN_EMAILS = [e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()]

# Media store (Cloudinary). CLOUDINARY_URL wins over the split variables.
CLOUDINARY_URL = os.getenv("CLOUDINARY_URL")
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")

# Outbound mail. Without SMTP_HOST reset links are only logged.
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_SENDER = os.getenv("SMTP_SENDER", "no-reply@studygroup.local")
SMTP_USE_TLS = _flag("SMTP_USE_TLS", "true")

PASSWORD_RESET_TTL_HOURS = int(os.getenv("PASSWORD_RESET_TTL_HOURS", "24"))

AVATAR_MAX_BYTES = 5 * 1024 * 1024
CHAT_FILE_MAX_BYTES = 10 * 1024 * 1024
