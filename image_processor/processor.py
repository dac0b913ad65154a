import base64
import binascii
import logging
from typing import Any, Dict, Optional

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, Field, ValidationError, field_validator

from image_processor.magick_operations import (
    SUPPORTED_FORMATS,
    MagickConfig,
    MagickError,
    UnsupportedOperationError,
    describe_image,
    get_content_type,
    parse_operation,
    process_image,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Custom exception for image processing errors"""
    def __init__(self, status_code: int, detail: str, details: Any = None):
        self.status_code = status_code
        self.detail = detail
        self.details = details
        super().__init__(detail)

    def to_body(self) -> Dict[str, Any]:
        body = {'error': self.detail}
        if self.details is not None:
            body['details'] = self.details
        return body


class ProcessingRequest(BaseModel):
    imageData: str
    operation: str
    params: Dict[str, Any] = Field(default_factory=dict)
    format: Optional[str] = None

    @field_validator('operation', mode='before')
    @classmethod
    def operation_name(cls, value: Any) -> Any:
        # 5 -> '5'
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


def decode_image_data(image_data: str) -> bytes:
    """Decode raw base64 or a base64 data URI"""
    if image_data.startswith('data:'):
        _, _, image_data = image_data.partition(',')
    try:
        return base64.b64decode(''.join(image_data.split()), validate=True)
    except binascii.Error as e:
        raise ProcessingError(
            status_code=400,
            detail="imageData is not valid base64",
            details=str(e)
        )


def _validation_messages(error: ValidationError) -> list:
    return [
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    ]


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


def process_request(body: Dict[str, Any], config: MagickConfig,
                    request_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Process one request with ImageMagick.

    Args:
        body: Parsed JSON request body
        config: ImageMagick binary and timeout
        request_id: Identifier for log lines and the temporary directory

    Returns:
        Response body for a successful request

    Raises:
        ProcessingError: On invalid input (400) or tool failure (500)
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

    output_format = (request.format or operation.default_format).lower()
    if output_format not in SUPPORTED_FORMATS:
        raise ProcessingError(
            status_code=400,
            detail=f"Unsupported format: {output_format}. Must be one of: {', '.join(sorted(SUPPORTED_FORMATS))}"
        )

    image_data = decode_image_data(request.imageData)
    logger.info(f"[{request_id}] Processing operation: {request.operation} with params: {operation.model_dump()}")

    try:
        processed_image = process_image(image_data, operation, output_format, config, request_id)
    except MagickError as e:
        logger.error(f"[{request_id}] {str(e)}")
        raise ProcessingError(
            status_code=500,
            detail="Image processing failed",
            details=str(e)
        )

    try:
        metadata = describe_image(processed_image)
    except (UnidentifiedImageError, Image.DecompressionBombError) as e:
        logger.warning(f"[{request_id}] Could not read processed image metadata: {str(e)}")
        metadata = {'format': output_format, 'size': len(processed_image)}
    logger.info(f"[{request_id}] Completed processing: {metadata}")

    return {
        'success': True,
        'imageData': base64.b64encode(processed_image).decode('utf-8'),
        'contentType': get_content_type(output_format),
        **metadata
    }
