import json
import uuid
import base64
import logging
import traceback
from typing import Dict, Any

from image_processor.magick_operations import MagickConfig
from image_processor.error_handler import error_handler
from image_processor.processor import ProcessingError, process_request

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'Content-Type',
    'Access-Control-Allow-Methods': 'POST, OPTIONS',
    'Content-Type': 'application/json'
}

# Binary and timeout are read from the environment once per cold start
magick_config = MagickConfig()


def create_response(status_code: int, body: Any) -> Dict[str, Any]:
    """Create API Gateway response"""
    return {
        'statusCode': status_code,
        'headers': dict(CORS_HEADERS),
        'body': body if isinstance(body, str) else json.dumps(body)
    }


def get_request_id(event: Dict[str, Any], context: Any) -> str:
    request_context = event.get('requestContext') or {}
    if request_context.get('requestId'):
        return request_context['requestId']
    return getattr(context, 'aws_request_id', None) or str(uuid.uuid4())


def parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """Decode the JSON request body"""
    raw_body = event.get('body') or ''
    try:
        if event.get('isBase64Encoded'):
            raw_body = base64.b64decode(raw_body).decode('utf-8')
        body = json.loads(raw_body)
    except ValueError:
        raise ProcessingError(status_code=400, detail='Invalid JSON body')

    if not isinstance(body, dict):
        raise ProcessingError(status_code=400, detail='Request body must be a JSON object')
    return body


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Serverless handler that processes an image with ImageMagick.

    Expected request:
    POST {"imageData": "<base64 or data URI>", "operation": "resize",
          "params": {"width": 100, "height": 100}, "format": "png"}

    Returns:
        API Gateway response dictionary with a JSON body
    """
    http_method = (event.get('httpMethod') or '').upper()

    # Handle preflight requests
    if http_method == 'OPTIONS':
        return create_response(200, '')

    if http_method != 'POST':
        return create_response(405, {'error': 'Method Not Allowed'})

    request_id = get_request_id(event, context)

    try:
        body = parse_body(event)
        logger.info(f"[{request_id}] Received request for operation: {body.get('operation')}")
        result = process_request(body, magick_config, request_id)
        return create_response(200, result)

    except ProcessingError as e:
        logger.error(f"[{request_id}] Processing error: {e.detail}")
        if e.status_code >= 500:
            error_handler.record_error(
                request_id=request_id,
                task_type='image/magick',
                error_message=e.detail,
                error_details={'details': e.details}
            )
        return create_response(e.status_code, e.to_body())

    except Exception as e:
        error_message = str(e)
        logger.error(f"[{request_id}] Unexpected error: {error_message}")
        logger.error(traceback.format_exc())

        error_handler.record_error(
            request_id=request_id,
            task_type='image/magick',
            error_message=error_message,
            error_details={
                'traceback': traceback.format_exc(),
                'error_type': e.__class__.__name__
            }
        )
        return create_response(500, {
            'error': 'Image processing failed',
            'details': error_message
        })
