"""Tests for the Cloudinary processing function.

The Cloudinary SDK upload call and the download of the processed image
are mocked; URL generation runs against the real SDK.
"""

from unittest import mock

import pytest
import requests

from cloudinary_processor import handler
from cloudinary_processor.cloudinary_operations import (
    CloudinaryClient,
    CloudinaryConfig,
    to_upload_data,
)
from conftest import make_event, response_json

UPLOAD_RESULT = {
    'public_id': 'retool-processed/abc123',
    'secure_url': 'https://res.cloudinary.com/demo/image/upload/v1/retool-processed/abc123.jpg',
    'width': 800,
    'height': 600,
    'format': 'jpg',
    'bytes': 12345,
}


@pytest.fixture
def config():
    return CloudinaryConfig(cloud_name='demo', api_key='key', api_secret='secret')


@pytest.fixture
def client(monkeypatch, config):
    client = CloudinaryClient(config)
    monkeypatch.setattr(handler, 'cloudinary_client', client)
    return client


@pytest.fixture
def upload():
    with mock.patch('cloudinary.uploader.upload', return_value=dict(UPLOAD_RESULT)) as upload:
        yield upload


@pytest.fixture
def download():
    response = mock.Mock()
    response.content = b'processed-bytes'
    response.raise_for_status.return_value = None
    with mock.patch('cloudinary_processor.cloudinary_operations.requests.get', return_value=response) as get:
        yield get


class TestHttpSurface:
    def test_options_returns_empty_body_with_cors(self):
        response = handler.lambda_handler(make_event('OPTIONS', raw_body='not json'), None)
        assert response['statusCode'] == 200
        assert response['body'] == ''
        assert response['headers']['Access-Control-Allow-Origin'] == '*'
        assert response['headers']['Access-Control-Allow-Methods'] == 'POST, OPTIONS'
        assert response['headers']['Access-Control-Allow-Headers'] == 'Content-Type'

    @pytest.mark.parametrize('method', ['GET', 'PUT', 'DELETE', 'PATCH'])
    def test_other_methods_are_rejected(self, method):
        response = handler.lambda_handler(make_event(method, body={'imageData': 'x', 'operation': 'resize'}), None)
        assert response['statusCode'] == 405
        assert response_json(response) == {'error': 'Method Not Allowed'}
        assert response['headers']['Access-Control-Allow-Origin'] == '*'

    def test_invalid_json(self):
        response = handler.lambda_handler(make_event(raw_body='{not json'), None)
        assert response['statusCode'] == 400
        assert response_json(response)['error'] == 'Invalid JSON body'


class TestValidation:
    @pytest.mark.parametrize('body', [
        {'operation': 'resize'},
        {'imageData': 'abc'},
        {'imageData': '', 'operation': 'resize'},
        {'imageData': 'abc', 'operation': None, 'params': {'width': 10}},
    ])
    def test_missing_required_fields(self, body):
        response = handler.lambda_handler(make_event(body=body), None)
        assert response['statusCode'] == 400
        assert response_json(response)['error'] == 'Missing required fields: imageData and operation'

    def test_unsupported_operation_is_named(self, upload):
        response = handler.lambda_handler(
            make_event(body={'imageData': 'abc', 'operation': 'sharpen', 'returnUrl': True}), None
        )
        assert response['statusCode'] == 400
        assert response_json(response)['error'] == 'Unsupported operation: sharpen'
        upload.assert_not_called()

    def test_numeric_operation_is_named(self, upload):
        response = handler.lambda_handler(
            make_event(body={'imageData': 'abc', 'operation': 5}), None
        )
        assert response['statusCode'] == 400
        assert response_json(response)['error'] == 'Unsupported operation: 5'
        upload.assert_not_called()

    def test_invalid_param_type(self, upload):
        response = handler.lambda_handler(
            make_event(body={'imageData': 'abc', 'operation': 'resize', 'params': {'width': 'wide'}}), None
        )
        assert response['statusCode'] == 400
        body = response_json(response)
        assert body['error'] == 'Invalid parameters for operation resize'
        assert any('width' in message for message in body['details'])
        upload.assert_not_called()


class TestProcessing:
    def test_resize_returns_url_and_image_data(self, client, upload, download, jpeg_base64):
        response = handler.lambda_handler(
            make_event(body={'imageData': jpeg_base64, 'operation': 'resize'}), None
        )
        assert response['statusCode'] == 200
        body = response_json(response)
        assert body['success'] is True
        assert body['originalUrl'] == UPLOAD_RESULT['secure_url']
        assert body['publicId'] == 'retool-processed/abc123'
        assert body['width'] == 800
        assert body['height'] == 600
        assert body['format'] == 'jpg'
        assert body['size'] == 12345
        assert body['variations'] == {}
        assert body['imageData'] == 'cHJvY2Vzc2VkLWJ5dGVz'
        assert 'warning' not in body

        download.assert_called_once_with(UPLOAD_RESULT['secure_url'], timeout=30.0)

    def test_upload_options(self, client, upload, download, jpeg_base64):
        handler.lambda_handler(
            make_event(body={
                'imageData': jpeg_base64,
                'operation': 'filter',
                'params': {'sepia': True, 'blur': 5},
                'format': 'png',
                'quality': 90
            }),
            None
        )
        args, kwargs = upload.call_args
        assert args[0] == f'data:image/jpeg;base64,{jpeg_base64}'
        assert kwargs['folder'] == 'retool-processed'
        assert kwargs['resource_type'] == 'image'
        assert kwargs['use_filename'] is False
        assert kwargs['unique_filename'] is True
        assert kwargs['transformation'] == [{'effect': 'sepia,blur:5', 'format': 'png', 'quality': 90}]
        assert kwargs['cloud_name'] == 'demo'
        assert kwargs['api_key'] == 'key'
        assert kwargs['api_secret'] == 'secret'

    def test_data_uri_is_passed_through(self, client, upload, download):
        data_uri = 'data:image/png;base64,iVBORw0KGgo='
        handler.lambda_handler(make_event(body={'imageData': data_uri, 'operation': 'rotate'}), None)
        assert upload.call_args[0][0] == data_uri

    def test_return_url_skips_download(self, client, upload, download, jpeg_base64):
        response = handler.lambda_handler(
            make_event(body={'imageData': jpeg_base64, 'operation': 'auto_enhance', 'returnUrl': True}), None
        )
        assert response['statusCode'] == 200
        assert 'imageData' not in response_json(response)
        download.assert_not_called()

    def test_variations(self, client, upload, download, jpeg_base64):
        response = handler.lambda_handler(
            make_event(body={
                'imageData': jpeg_base64,
                'operation': 'resize',
                'params': {'generateThumbnail': True, 'generateWebP': True},
                'returnUrl': True
            }),
            None
        )
        variations = response_json(response)['variations']
        assert variations['thumbnail'].startswith('https://res.cloudinary.com/demo/image/upload/')
        assert 'w_150' in variations['thumbnail']
        assert 'h_150' in variations['thumbnail']
        assert variations['webp'].endswith('.webp')
        assert 'w_800' in variations['webp']

    def test_download_failure_is_not_fatal(self, client, upload, jpeg_base64):
        with mock.patch(
            'cloudinary_processor.cloudinary_operations.requests.get',
            side_effect=requests.ConnectionError('connection reset')
        ):
            response = handler.lambda_handler(
                make_event(body={'imageData': jpeg_base64, 'operation': 'resize'}), None
            )
        assert response['statusCode'] == 200
        body = response_json(response)
        assert body['originalUrl'] == UPLOAD_RESULT['secure_url']
        assert 'imageData' not in body
        assert body['warning'] == 'Could not return base64 data, URL provided instead'


class TestUpstreamErrors:
    def test_upstream_error_code_is_surfaced(self, client, jpeg_base64):
        error_result = {'error': {'message': 'Invalid image file', 'http_code': 400}}
        with mock.patch('cloudinary.uploader.upload', return_value=error_result):
            response = handler.lambda_handler(
                make_event(body={'imageData': jpeg_base64, 'operation': 'resize'}), None
            )
        assert response['statusCode'] == 500
        assert response_json(response) == {
            'error': 'Image processing failed',
            'details': 'Invalid image file',
            'code': 400
        }

    def test_sdk_error_has_unknown_code(self, client, jpeg_base64):
        from cloudinary.exceptions import Error

        with mock.patch('cloudinary.uploader.upload', side_effect=Error('Server returned unexpected status code')):
            response = handler.lambda_handler(
                make_event(body={'imageData': jpeg_base64, 'operation': 'resize'}), None
            )
        assert response['statusCode'] == 500
        body = response_json(response)
        assert body['details'] == 'Server returned unexpected status code'
        assert body['code'] == 'UNKNOWN'

    def test_missing_credentials_fail_at_upload(self, monkeypatch, upload, jpeg_base64):
        monkeypatch.setattr(
            handler, 'cloudinary_client',
            CloudinaryClient(CloudinaryConfig(cloud_name=None, api_key=None, api_secret=None))
        )
        response = handler.lambda_handler(
            make_event(body={'imageData': jpeg_base64, 'operation': 'resize'}), None
        )
        assert response['statusCode'] == 500
        body = response_json(response)
        assert 'credentials not configured' in body['details']
        assert body['code'] == 'UNKNOWN'
        upload.assert_not_called()

    def test_server_errors_are_reported(self, monkeypatch, client, jpeg_base64):
        record_error = mock.Mock()
        monkeypatch.setattr(handler.error_handler, 'record_error', record_error)
        with mock.patch('cloudinary.uploader.upload', return_value={'error': {'message': 'boom', 'http_code': 500}}):
            handler.lambda_handler(make_event(body={'imageData': jpeg_base64, 'operation': 'resize'}), None)
        record_error.assert_called_once()
        assert record_error.call_args.kwargs['task_type'] == 'image/cloudinary'
        assert record_error.call_args.kwargs['request_id'] == 'test-request'


class TestConfig:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv('CLOUDINARY_CLOUD_NAME', 'env-cloud')
        monkeypatch.setenv('CLOUDINARY_API_KEY', 'env-key')
        monkeypatch.setenv('CLOUDINARY_API_SECRET', 'env-secret')
        config = CloudinaryConfig()
        assert config.is_configured
        assert config.credentials() == {
            'cloud_name': 'env-cloud',
            'api_key': 'env-key',
            'api_secret': 'env-secret'
        }
        assert config.folder == 'retool-processed'

    def test_partial_credentials_are_not_configured(self):
        assert not CloudinaryConfig(cloud_name='demo', api_key=None, api_secret='secret').is_configured

    @pytest.mark.parametrize('image_data,expected', [
        ('abc', 'data:image/jpeg;base64,abc'),
        ('data:image/png;base64,abc', 'data:image/png;base64,abc'),
    ])
    def test_upload_data(self, image_data, expected):
        assert to_upload_data(image_data) == expected
