import base64
import logging
from typing import Any, Dict, Optional, Union

import requests
from pydantic import BaseModel, Field, ValidationError, field_validator

from cloudinary_processor.cloudinary_operations import CloudinaryClient, CloudinaryError
from cloudinary_processor.transformations import (
    UnsupportedOperationError,
    build_transformation,
    parse_operation,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Custom exception for image processing errors"""
    def __init__(self, status_code: int, detail: str, details: Any = None, code: Any = None):
        self.status_code = status_code
        self.detail = detail
        self.details = details
        self.code = code
        super().__init__(detail)

    def to_body(self) -> Dict[str, Any]:
        body = {'error': self.detail}
        if self.details is not None:
            body['details'] = self.details
        if self.code is not None:
            body['code'] = self.code
        return body


class ProcessingRequest(BaseModel):
    imageData: str
    operation: str
    params: Dict[str, Any] = Field(default_factory=dict)
    returnUrl: bool = False
    format: str = 'jpg'
    quality: Union[str, int] = 'auto'

    @field_validator('operation', mode='before')
    @classmethod
    def operation_name(cls, value: Any) -> Any:
        # 5 -> '5'
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


def parse_request(body: Dict[str, Any]) -> ProcessingRequest:
    """Validate the request body and apply defaults"""
    if not body.get('imageData') or not body.get('operation'):
        raise ProcessingError(
            status_code=400,
            detail="Missing required fields: imageData and operation"
        )

    data = {key: value for key, value in body.items() if value is not None}
    try:
        return ProcessingRequest(**data)
    except ValidationError as e:
        raise ProcessingError(
            status_code=400,
            detail="Invalid request",
            details=_validation_messages(e)
        )


def _validation_messages(error: ValidationError) -> list:
    return [
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    ]


def process_request(body: Dict[str, Any], client: CloudinaryClient,
                    request_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Process one request against Cloudinary.

    Args:
        body: Parsed JSON request body
        client: Cloudinary client used for the upload
        request_id: Identifier used in log lines

    Returns:
        Response body for a successful request

    Raises:
        ProcessingError: On invalid input (400) or upstream failure (500)
    """
    request = parse_request(body)

    try:
        operation = parse_operation(request.operation, request.params)
    except UnsupportedOperationError as e:
        raise ProcessingError(status_code=400, detail=str(e))
    except ValidationError as e:
        raise ProcessingError(
            status_code=400,
            detail=f"Invalid parameters for operation {request.operation}",
            details=_validation_messages(e)
        )

    transformation = build_transformation(operation, request.format, request.quality)
    logger.info(f"[{request_id}] Processing operation: {request.operation} with transformation: {transformation}")

    try:
        upload_result = client.upload(request.imageData, transformation)
    except CloudinaryError as e:
        logger.error(f"[{request_id}] Cloudinary processing error: {str(e)}")
        raise ProcessingError(
            status_code=500,
            detail="Image processing failed",
            details=str(e),
            code=e.http_code or 'UNKNOWN'
        )

    variations = client.variant_urls(
        upload_result['public_id'],
        transformation,
        request.format,
        thumbnail=operation.generateThumbnail,
        webp=operation.generateWebP
    )

    response = {
        'success': True,
        'originalUrl': upload_result.get('secure_url'),
        'publicId': upload_result.get('public_id'),
        'width': upload_result.get('width'),
        'height': upload_result.get('height'),
        'format': upload_result.get('format'),
        'size': upload_result.get('bytes'),
        'variations': variations
    }

    if not request.returnUrl:
        try:
            processed_image = client.fetch(response['originalUrl'])
            response['imageData'] = base64.b64encode(processed_image).decode('utf-8')
        except requests.RequestException as e:
            logger.warning(f"[{request_id}] Failed to fetch processed image: {str(e)}")
            response['warning'] = 'Could not return base64 data, URL provided instead'

    logger.info(f"[{request_id}] Completed processing: {response['publicId']}")
    return response
