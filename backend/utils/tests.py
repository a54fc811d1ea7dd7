import json
from unittest.mock import Mock, patch

import requests as http_requests
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase, override_settings

from .upstage_client import (
    UpstageAPIError,
    UpstageConfigurationError,
    chat_completion,
    parse_document,
)


def make_response(payload=None, status_code=200, text=''):
    response = Mock()
    response.ok = 200 <= status_code < 300
    response.status_code = status_code
    response.text = text
    response.json.return_value = payload
    return response


@override_settings(UPSTAGE_API_KEY='test-key', UPSTAGE_BASE_URL='https://api.upstage.ai/v1', UPSTAGE_TIMEOUT=30)
class ParseDocumentTests(SimpleTestCase):

    def setUp(self):
        self.uploaded_file = SimpleUploadedFile('nda.pdf', b'%PDF-1.4 nda', content_type='application/pdf')

    @patch('utils.upstage_client.http_requests.post')
    def test_parse_document_request(self, mock_post):
        """The document goes out as multipart with the Document Parse options."""
        mock_post.return_value = make_response({
            'content': {'html': '<p>NDA</p>', 'text': 'NDA'},
            'elements': [],
            'usage': {'pages': 2},
        })

        parse_document(self.uploaded_file)

        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], 'https://api.upstage.ai/v1/document-digitization')
        self.assertEqual(kwargs['headers'], {'Authorization': 'Bearer test-key'})
        self.assertEqual(kwargs['timeout'], 30)
        self.assertEqual(kwargs['files']['document'][0], 'nda.pdf')
        self.assertEqual(kwargs['data']['model'], 'document-parse')
        self.assertEqual(kwargs['data']['ocr'], 'auto')
        self.assertEqual(json.loads(kwargs['data']['output_formats']), ['html', 'text'])

    @patch('utils.upstage_client.http_requests.post')
    def test_parse_document_normalizes_result(self, mock_post):
        mock_post.return_value = make_response({
            'api': '2.0',
            'content': {'html': '<p>Confidential</p>', 'markdown': '', 'text': 'Confidential'},
            'elements': [{'category': 'paragraph', 'id': 0, 'page': 1}],
            'model': 'document-parse-250116',
            'usage': {'pages': 3},
        })

        parsed = parse_document(self.uploaded_file)

        self.assertEqual(parsed, {
            'text': 'Confidential',
            'html': '<p>Confidential</p>',
            'elements': [{'category': 'paragraph', 'id': 0, 'page': 1}],
            'pages': 3,
        })

    @patch('utils.upstage_client.http_requests.post')
    def test_parse_document_text_falls_back_to_html(self, mock_post):
        mock_post.return_value = make_response({
            'content': {'html': '<p>Scanned NDA</p>', 'text': ''},
            'usage': {},
        })

        parsed = parse_document(self.uploaded_file)

        self.assertEqual(parsed['text'], '<p>Scanned NDA</p>')
        self.assertEqual(parsed['elements'], [])
        self.assertEqual(parsed['pages'], 0)

    @patch('utils.upstage_client.http_requests.post')
    def test_parse_document_error_status(self, mock_post):
        mock_post.return_value = make_response(status_code=401, text='Unauthorized')

        with self.assertRaises(UpstageAPIError) as ctx:
            parse_document(self.uploaded_file)

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(str(ctx.exception), '401 - Unauthorized')

    @patch('utils.upstage_client.http_requests.post')
    def test_parse_document_without_content(self, mock_post):
        mock_post.return_value = make_response({'elements': []})

        with self.assertRaises(UpstageAPIError):
            parse_document(self.uploaded_file)

    @patch('utils.upstage_client.http_requests.post')
    def test_parse_document_network_error(self, mock_post):
        mock_post.side_effect = http_requests.exceptions.ConnectionError('connection refused')

        with self.assertRaises(UpstageAPIError) as ctx:
            parse_document(self.uploaded_file)

        self.assertIn('connection refused', str(ctx.exception))

    @patch('utils.upstage_client.http_requests.post')
    def test_parse_document_non_json_body(self, mock_post):
        response = make_response(status_code=200)
        response.json.side_effect = ValueError('No JSON object could be decoded')
        mock_post.return_value = response

        with self.assertRaises(UpstageAPIError):
            parse_document(self.uploaded_file)

    @override_settings(UPSTAGE_API_KEY='')
    @patch('utils.upstage_client.http_requests.post')
    def test_parse_document_without_api_key(self, mock_post):
        with self.assertRaises(UpstageConfigurationError):
            parse_document(self.uploaded_file)
        mock_post.assert_not_called()


@override_settings(UPSTAGE_API_KEY='test-key', UPSTAGE_BASE_URL='https://api.upstage.ai/v1/', UPSTAGE_MODEL='solar-pro2-preview')
class ChatCompletionTests(SimpleTestCase):

    def setUp(self):
        self.messages = [
            {'role': 'system', 'content': 'You are a lawyer.'},
            {'role': 'user', 'content': 'Compare these.'},
        ]
        self.schema = {'type': 'object', 'properties': {'ok': {'type': 'boolean'}}}

    @patch('utils.upstage_client.http_requests.post')
    def test_chat_completion_payload(self, mock_post):
        mock_post.return_value = make_response({
            'choices': [{'message': {'role': 'assistant', 'content': '{"ok": true}'}}],
        })

        result = chat_completion(self.messages, self.schema, 'nda_analysis')

        self.assertEqual(result, {'ok': True})
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], 'https://api.upstage.ai/v1/chat/completions')
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer test-key')
        payload = kwargs['json']
        self.assertEqual(payload['model'], 'solar-pro2-preview')
        self.assertEqual(payload['messages'], self.messages)
        self.assertEqual(payload['reasoning_effort'], 'high')
        self.assertFalse(payload['stream'])
        self.assertEqual(payload['response_format']['type'], 'json_schema')
        self.assertEqual(payload['response_format']['json_schema']['name'], 'nda_analysis')
        self.assertTrue(payload['response_format']['json_schema']['strict'])
        self.assertEqual(payload['response_format']['json_schema']['schema'], self.schema)

    @patch('utils.upstage_client.http_requests.post')
    def test_chat_completion_without_choices(self, mock_post):
        mock_post.return_value = make_response({'choices': []})

        with self.assertRaisesMessage(UpstageAPIError, 'No response from SolarLLM'):
            chat_completion(self.messages, self.schema, 'nda_analysis')

    @patch('utils.upstage_client.http_requests.post')
    def test_chat_completion_non_json_content(self, mock_post):
        mock_post.return_value = make_response({
            'choices': [{'message': {'content': 'Here is my analysis: the NDAs differ.'}}],
        })

        with self.assertRaisesMessage(UpstageAPIError, 'LLM response was not valid JSON'):
            chat_completion(self.messages, self.schema, 'nda_analysis')

    @patch('utils.upstage_client.http_requests.post')
    def test_chat_completion_error_status(self, mock_post):
        mock_post.return_value = make_response(status_code=429, text='Rate limit exceeded')

        with self.assertRaises(UpstageAPIError) as ctx:
            chat_completion(self.messages, self.schema, 'nda_analysis')

        self.assertEqual(ctx.exception.status_code, 429)

    @override_settings(UPSTAGE_API_KEY=None)
    @patch('utils.upstage_client.http_requests.post')
    def test_chat_completion_without_api_key(self, mock_post):
        with self.assertRaisesMessage(UpstageConfigurationError, 'UPSTAGE_API_KEY'):
            chat_completion(self.messages, self.schema, 'nda_analysis')
        mock_post.assert_not_called()
