import os
import logging
from typing import Any, Dict, Optional

import cloudinary.uploader
import cloudinary.utils
import requests
from cloudinary.exceptions import Error as CloudinarySDKError
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class CloudinaryConfig(BaseModel):
    cloud_name: Optional[str] = Field(default_factory=lambda: os.getenv("CLOUDINARY_CLOUD_NAME"))
    api_key: Optional[str] = Field(default_factory=lambda: os.getenv("CLOUDINARY_API_KEY"))
    api_secret: Optional[str] = Field(default_factory=lambda: os.getenv("CLOUDINARY_API_SECRET"))
    folder: str = Field(default_factory=lambda: os.getenv("CLOUDINARY_FOLDER", "retool-processed"))
    fetch_timeout: float = Field(default_factory=lambda: float(os.getenv("FETCH_TIMEOUT", "30")))

    @property
    def is_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def credentials(self) -> Dict[str, str]:
        """Credentials passed explicitly on every SDK call"""
        return {
            'cloud_name': self.cloud_name,
            'api_key': self.api_key,
            'api_secret': self.api_secret
        }


class CloudinaryError(Exception):
    """Error returned by Cloudinary or raised while talking to it"""
    def __init__(self, message: str, http_code: Optional[int] = None):
        self.http_code = http_code
        super().__init__(message)


def to_upload_data(image_data: str) -> str:
    """Prefix raw base64 with a JPEG data URI header; data URIs pass through"""
    if image_data.startswith('data:'):
        return image_data
    return f'data:image/jpeg;base64,{image_data}'


class CloudinaryClient:
    """Uploads images with a transformation and builds delivery URLs"""

    def __init__(self, config: CloudinaryConfig):
        self.config = config

    def upload(self, image_data: str, transformation: Dict[str, Any]) -> Dict[str, Any]:
        """
        Upload an image to Cloudinary with an incoming transformation.

        Every call stores a new asset under the configured folder with a
        unique generated name.

        Args:
            image_data: Base64 string or data URI
            transformation: Transformation options applied before storage

        Returns:
            Upload result (public_id, secure_url, width, height, format, bytes, ...)

        Raises:
            CloudinaryError: If credentials are missing or the upload fails
        """
        if not self.config.is_configured:
            raise CloudinaryError(
                "Cloudinary credentials not configured. Set CLOUDINARY_CLOUD_NAME, "
                "CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET environment variables."
            )

        upload_options = {
            'folder': self.config.folder,
            'resource_type': 'image',
            'transformation': [transformation],
            'use_filename': False,
            'unique_filename': True,
            'return_error': True,
            **self.config.credentials()
        }

        try:
            result = cloudinary.uploader.upload(to_upload_data(image_data), **upload_options)
        except CloudinarySDKError as e:
            raise CloudinaryError(str(e)) from e

        if 'error' in result:
            error = result['error']
            raise CloudinaryError(error.get('message', 'Unknown Cloudinary error'), error.get('http_code'))

        logger.info(f"Uploaded image to Cloudinary: {result.get('public_id')}")
        return result

    def url(self, public_id: str, **options) -> str:
        """Build a secure delivery URL for a stored asset"""
        url, _ = cloudinary.utils.cloudinary_url(
            public_id,
            secure=True,
            cloud_name=self.config.cloud_name,
            **options
        )
        return url

    def variant_urls(self, public_id: str, transformation: Dict[str, Any], format: str,
                     thumbnail: bool = False, webp: bool = False) -> Dict[str, str]:
        """Derived variant URLs; these are built locally and never fetched"""
        variations = {}
        if thumbnail:
            variations['thumbnail'] = self.url(
                public_id,
                width=150,
                height=150,
                crop='fill',
                format=format,
                quality='auto'
            )
        if webp:
            variations['webp'] = self.url(public_id, **{**transformation, 'format': 'webp'})
        return variations

    def fetch(self, url: str) -> bytes:
        """
        Download a processed asset.

        Raises:
            requests.RequestException: If the download fails
        """
        response = requests.get(url, timeout=self.config.fetch_timeout)
        response.raise_for_status()
        return response.content
