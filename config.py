"""
Runtime configuration

Everything is read from the environment (a local .env file is loaded first).
"""

import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_CLIENT_URLS = [
    "https://rangrez-events-front-end.vercel.app",
    "http://localhost:5173",
]


def _split_urls(value: Optional[str]) -> List[str]:
    if not value:
        return list(DEFAULT_CLIENT_URLS)
    return [url.strip().rstrip("/") for url in value.split(",") if url.strip()]


class Settings(BaseModel):
    database_url: Optional[str] = None
    database_name: Optional[str] = None

    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None

    email_host: str = "smtp.gmail.com"
    email_port: int = 587
    email_user: Optional[str] = None
    email_password: Optional[str] = None
    email_from: Optional[str] = None

    client_urls: List[str] = Field(default_factory=lambda: list(DEFAULT_CLIENT_URLS))

    admin_token: Optional[str] = None
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None

    ticket_verify_url: str = "https://your-domain.com/verify-ticket"
    static_dir: str = "uploads"

    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            cloudinary_cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
            cloudinary_api_key=os.getenv("CLOUDINARY_API_KEY"),
            cloudinary_api_secret=os.getenv("CLOUDINARY_API_SECRET"),
            email_host=os.getenv("EMAIL_HOST", "smtp.gmail.com"),
            email_port=int(os.getenv("EMAIL_PORT", 587)),
            email_user=os.getenv("EMAIL_USER"),
            email_password=os.getenv("EMAIL_PASSWORD"),
            email_from=os.getenv("EMAIL_FROM"),
            client_urls=_split_urls(os.getenv("CLIENT_URLS")),
            admin_token=os.getenv("ADMIN_TOKEN"),
            admin_email=os.getenv("ADMIN_EMAIL"),
            admin_password=os.getenv("ADMIN_PASSWORD"),
            ticket_verify_url=os.getenv(
                "TICKET_VERIFY_URL", "https://your-domain.com/verify-ticket"
            ),
            static_dir=os.getenv("STATIC_DIR", "uploads"),
            port=int(os.getenv("PORT", 8000)),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
