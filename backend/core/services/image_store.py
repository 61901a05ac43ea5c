"""
Core Service — Image Store Client (Cloudinary)
================================================

What:  Configures the Cloudinary SDK from CORE_CLOUDINARY_KEY.
How:   The key is a cloudinary://<api_key>:<api_secret>@<cloud_name> URL. It is
       split into its parts, applied with secure (https) delivery URLs, and the
       configured SDK module is returned as the client handle.
When:  Once at startup; a malformed URL stops the server before it binds.
"""

import logging
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit

import cloudinary

from core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SCHEME = "cloudinary"


@dataclass(frozen=True)
class CloudinaryCredentials:
    cloud_name: str
    api_key: str
    api_secret: str


def parse_cloudinary_url(url: str) -> CloudinaryCredentials:
    if not url:
        raise ConfigurationError("Cloudinary API key is not configured")
    parts = urlsplit(url.strip())
    if parts.scheme != SCHEME or not parts.hostname or not parts.username or not parts.password:
        raise ConfigurationError(
            "CORE_CLOUDINARY_KEY must look like cloudinary://<api_key>:<api_secret>@<cloud_name>",
            context={"scheme": parts.scheme},
        )
    return CloudinaryCredentials(
        cloud_name=parts.hostname,
        api_key=unquote(parts.username),
        api_secret=unquote(parts.password),
    )


def build_image_store(url: str):
    """Returns the configured cloudinary module; raises ConfigurationError on a bad URL."""
    credentials = parse_cloudinary_url(url)
    cloudinary.config(
        cloud_name=credentials.cloud_name,
        api_key=credentials.api_key,
        api_secret=credentials.api_secret,
        secure=True,
    )
    logger.info("Cloudinary client initialized (cloud=%s)", credentials.cloud_name)
    return cloudinary
