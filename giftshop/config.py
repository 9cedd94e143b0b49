# giftshop/config.py
import logging
from functools import lru_cache
from typing import List, Literal, Optional, Set

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.logging import RichHandler


class Settings(BaseSettings):
    """Runtime configuration, read from ``GIFTSHOP_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="GIFTSHOP_",
        env_file=".env",
        extra="ignore",
    )

    backend: Literal["memory", "remote"] = "memory"
    remote_url: str = "http://localhost:54321"
    remote_api_key: Optional[str] = None
    remote_timeout: float = 10.0
    image_bucket: str = "product-images"

    shop_name: str = "Nepal Gift House"
    whatsapp_number: str = "9779815888721"
    display_phone: str = "9815888721"
    contact_phone: str = "+977 9815888721"
    maps_link: str = "https://maps.app.goo.gl/4GQduP9t81mdoFk96"
    gallery_images: List[str] = Field(default_factory=lambda: [
        "https://images.pexels.com/photos/265937/pexels-photo-265937.jpeg",
        "https://images.pexels.com/photos/2072454/pexels-photo-2072454.jpeg",
        "https://images.pexels.com/photos/1910236/pexels-photo-1910236.jpeg",
        "https://images.pexels.com/photos/2072160/pexels-photo-2072160.jpeg",
    ])

    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    # who may flip live <-> out_of_stock and hard-delete products
    stock_toggle_roles: Set[str] = Field(default_factory=lambda: {"admin", "staff"})
    delete_roles: Set[str] = Field(default_factory=lambda: {"admin", "staff"})

    # seeded on startup when both are set
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None

    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: Optional[str] = None):
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )
