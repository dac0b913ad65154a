"""Shared fixtures for the processing function tests.

Images are generated in memory with Pillow so tests carry no binary
fixtures. Error notifications are disabled so no test reaches SNS.
"""

import base64
import io
import json
import shutil

import pytest
from PIL import Image

from cloudinary_processor import error_handler as cloudinary_error_handler
from image_processor import error_handler as image_error_handler


magick_installed = pytest.mark.skipif(
    shutil.which('magick') is None,
    reason="ImageMagick 'magick' binary is not installed"
)


def make_image(color=(255, 0, 0), size=(64, 64), format='JPEG') -> bytes:
    """Create a solid-colour image and return its encoded bytes"""
    image = Image.new('RGB', size, color)
    output = io.BytesIO()
    image.save(output, format=format)
    return output.getvalue()


def make_event(method='POST', body=None, raw_body=None, request_id='test-request'):
    """Build an API Gateway proxy event"""
    if raw_body is None and body is not None:
        raw_body = json.dumps(body)
    return {
        'httpMethod': method,
        'path': '/.netlify/functions/test',
        'body': raw_body,
        'isBase64Encoded': False,
        'requestContext': {'requestId': request_id},
    }


def response_json(response):
    return json.loads(response['body'])


@pytest.fixture(autouse=True)
def disable_error_notifications(monkeypatch):
    monkeypatch.setattr(cloudinary_error_handler.error_handler, 'sns_topic_arn', None)
    monkeypatch.setattr(image_error_handler.error_handler, 'sns_topic_arn', None)


@pytest.fixture
def jpeg_base64():
    return base64.b64encode(make_image()).decode('utf-8')
