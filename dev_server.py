"""Local development server for the processing functions.

Translates plain HTTP requests into API Gateway proxy events and forwards
them to the function handlers, mirroring the deployed routes:

    /.netlify/functions/cloudinary-processor
    /.netlify/functions/image-processor

Run with ``python dev_server.py`` (requires uvicorn).
"""

import os
import base64
import uuid
from types import SimpleNamespace
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool

from cloudinary_processor.handler import lambda_handler as cloudinary_handler
from image_processor.handler import lambda_handler as image_handler

FUNCTIONS = {
    'cloudinary-processor': cloudinary_handler,
    'image-processor': image_handler,
}

app = FastAPI(title="Serverless Image Processor (local)")


async def build_event(request: Request, request_id: str) -> Dict[str, Any]:
    body = await request.body()
    return {
        'httpMethod': request.method,
        'path': request.url.path,
        'headers': dict(request.headers),
        'queryStringParameters': dict(request.query_params) or None,
        'body': base64.b64encode(body).decode('utf-8') if body else None,
        'isBase64Encoded': bool(body),
        'requestContext': {'requestId': request_id},
    }


@app.api_route(
    '/.netlify/functions/{function_name}',
    methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']
)
async def invoke_function(function_name: str, request: Request) -> Response:
    handler = FUNCTIONS.get(function_name)
    if handler is None:
        raise HTTPException(status_code=404, detail=f"Function not found: {function_name}")

    request_id = str(uuid.uuid4())
    event = await build_event(request, request_id)
    context = SimpleNamespace(aws_request_id=request_id, function_name=function_name)

    result = await run_in_threadpool(handler, event, context)
    return Response(
        content=result.get('body') or '',
        status_code=result['statusCode'],
        headers=result.get('headers') or {}
    )


if __name__ == '__main__':
    import uvicorn

    uvicorn.run(app, host=os.getenv('HOST', '127.0.0.1'), port=int(os.getenv('PORT', '8888')))
