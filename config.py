"""
Runtime configuration

Values come from the process environment; a local .env file is loaded first
so development setups behave like the deployed service.
"""
import os
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env(*names: str, default: Optional[str] = None) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value:
            return value.strip()
    return default


class Settings(BaseModel):
    # Database
    database_url: Optional[str] = Field(None, description="MongoDB connection string")
    database_name: str = Field("cloud9pastries", description="MongoDB database name")

    # Asset storage
    storage_backend: Literal["local", "cloudinary"] = "local"
    upload_dir: str = "uploads"
    public_base_url: str = Field("", description="Prefix for local /uploads URLs")
    cloud_name: Optional[str] = None
    cloud_key: Optional[str] = None
    cloud_secret: Optional[str] = None
    cloudinary_folder: str = "cloud9pastries"

    # Email
    email_backend: Literal["smtp", "resend", "none"] = "none"
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    resend_api_key: Optional[str] = None
    sender_email: Optional[str] = None
    sender_name: str = "Cloud 9 Pastries"
    admin_email: Optional[str] = Field(None, description="Operator address for order and contact notices")

    # Server
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        smtp_user = _env("SMTP_USER", "GMAIL_USER")
        smtp_password = _env("SMTP_PASSWORD", "GMAIL_PASS")
        default_email_backend = "smtp" if smtp_user and smtp_password else "none"
        return cls(
            database_url=_env("DATABASE_URL", "MONGO_URI"),
            database_name=_env("DATABASE_NAME", default="cloud9pastries"),
            storage_backend=_env("STORAGE_BACKEND", default="local").lower(),
            upload_dir=_env("UPLOAD_DIR", default="uploads"),
            public_base_url=_env("PUBLIC_BASE_URL", default="").rstrip("/"),
            cloud_name=_env("CLOUD_NAME"),
            cloud_key=_env("CLOUD_KEY"),
            cloud_secret=_env("CLOUD_SECRET"),
            cloudinary_folder=_env("CLOUDINARY_FOLDER", default="cloud9pastries"),
            email_backend=_env("EMAIL_BACKEND", default=default_email_backend).lower(),
            smtp_host=_env("SMTP_HOST", default="smtp.gmail.com"),
            smtp_port=int(_env("SMTP_PORT", default="465")),
            smtp_user=smtp_user,
            smtp_password=smtp_password,
            resend_api_key=_env("RESEND_API_KEY"),
            sender_email=_env("SENDER_EMAIL", default=smtp_user),
            sender_name=_env("SENDER_NAME", default="Cloud 9 Pastries"),
            admin_email=_env("ADMIN_EMAIL"),
            port=int(_env("PORT", default="8000")),
            log_level=_env("LOG_LEVEL", default="INFO").upper(),
        )
