from unittest.mock import patch

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from utils.upstage_client import UpstageAPIError

from .views import is_supported_document

PARSED_CONTENT = {
    'text': 'MUTUAL NON-DISCLOSURE AGREEMENT. Confidential Information means any proprietary information.',
    'html': '<h1>MUTUAL NON-DISCLOSURE AGREEMENT</h1>',
    'elements': [
        {
            'category': 'heading1',
            'content': {'html': '<h1>MUTUAL NON-DISCLOSURE AGREEMENT</h1>', 'markdown': '', 'text': 'MUTUAL NON-DISCLOSURE AGREEMENT'},
            'coordinates': [{'x': 0.1, 'y': 0.1}],
            'id': 0,
            'page': 1,
        }
    ],
    'pages': 1,
}


def make_pdf(name='reference.pdf', content_type='application/pdf', content=b'%PDF-1.4 test nda'):
    return SimpleUploadedFile(name, content, content_type=content_type)


class UploadDocumentViewTests(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.url = '/api/upload/'

    @patch('documents.views.parse_document')
    def test_upload_success(self, mock_parse_document):
        """A valid file and role returns the parsed content."""
        mock_parse_document.return_value = PARSED_CONTENT

        response = self.client.post(self.url, {'file': make_pdf(), 'type': 'referenceNda'}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()
        self.assertTrue(data['success'])
        self.assertEqual(data['message'], 'referenceNda uploaded and parsed successfully')
        self.assertEqual(data['fileName'], 'reference.pdf')
        self.assertEqual(data['documentType'], 'referenceNda')
        self.assertEqual(data['fileSize'], len(b'%PDF-1.4 test nda'))
        self.assertTrue(data['parsedContent']['text'])
        self.assertEqual(data['parsedContent']['pages'], 1)
        self.assertEqual(len(data['parsedContent']['elements']), 1)
        mock_parse_document.assert_called_once()

    @patch('documents.views.parse_document')
    def test_upload_customer_docx(self, mock_parse_document):
        mock_parse_document.return_value = PARSED_CONTENT
        docx = make_pdf(
            'customer.docx',
            content_type='application/vnd.openxmlformats-officedocument.wordprocessingml.document',
        )

        response = self.client.post(self.url, {'file': docx, 'type': 'customerNda'}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()['documentType'], 'customerNda')

    @patch('documents.views.parse_document')
    def test_upload_without_file(self, mock_parse_document):
        response = self.client.post(self.url, {'type': 'referenceNda'}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.json()['success'])
        self.assertEqual(response.json()['error'], 'No file provided')
        mock_parse_document.assert_not_called()

    @patch('documents.views.parse_document')
    def test_upload_without_type(self, mock_parse_document):
        """Omitting the role fails before any upstream call."""
        response = self.client.post(self.url, {'file': make_pdf()}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.json()['success'])
        self.assertEqual(response.json()['error'], 'Invalid document type')
        mock_parse_document.assert_not_called()

    @patch('documents.views.parse_document')
    def test_upload_invalid_type(self, mock_parse_document):
        response = self.client.post(self.url, {'file': make_pdf(), 'type': 'vendorNda'}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.json()['success'])
        mock_parse_document.assert_not_called()

    @patch('documents.views.parse_document')
    def test_upload_unsupported_file(self, mock_parse_document):
        text_file = make_pdf('notes.txt', content_type='text/plain', content=b'just text')

        response = self.client.post(self.url, {'file': text_file, 'type': 'customerNda'}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['error'], 'Only PDF, DOC, and DOCX files are supported')
        mock_parse_document.assert_not_called()

    @override_settings(NDA_MAX_UPLOAD_BYTES=4)
    @patch('documents.views.parse_document')
    def test_upload_too_large(self, mock_parse_document):
        response = self.client.post(self.url, {'file': make_pdf(), 'type': 'customerNda'}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['error'], 'File size exceeds the upload limit')
        mock_parse_document.assert_not_called()

    @patch('documents.views.parse_document')
    def test_upload_upstream_failure(self, mock_parse_document):
        """Upstream errors surface as 500 with the upstream status and message."""
        mock_parse_document.side_effect = UpstageAPIError('Service Unavailable', status_code=503)

        response = self.client.post(self.url, {'file': make_pdf(), 'type': 'referenceNda'}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        data = response.json()
        self.assertFalse(data['success'])
        self.assertEqual(data['error'], 'Failed to parse document')
        self.assertIn('503', data['details'])
        self.assertIn('Service Unavailable', data['details'])

    @override_settings(UPSTAGE_API_KEY='')
    @patch('utils.upstage_client.http_requests.post')
    def test_upload_without_api_key(self, mock_post):
        """Missing credentials is a server error, not a silent bypass."""
        response = self.client.post(self.url, {'file': make_pdf(), 'type': 'referenceNda'}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertIn('UPSTAGE_API_KEY', response.json()['details'])
        mock_post.assert_not_called()

    @patch('documents.views.parse_document')
    def test_upload_unexpected_error(self, mock_parse_document):
        mock_parse_document.side_effect = RuntimeError('disk full')

        response = self.client.post(self.url, {'file': make_pdf(), 'type': 'referenceNda'}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.json()['error'], 'Failed to upload file')

    @patch('documents.views.parse_document')
    def test_parsed_content_shape_is_stable(self, mock_parse_document):
        """Two uploads of the same file give the same parsedContent keys, whatever the OCR text."""
        mock_parse_document.side_effect = [
            PARSED_CONTENT,
            dict(PARSED_CONTENT, text='MUTUAL NON-DISCLOSURE AGREEMENT (second pass)'),
        ]

        first = self.client.post(self.url, {'file': make_pdf(), 'type': 'referenceNda'}, format='multipart').json()
        second = self.client.post(self.url, {'file': make_pdf(), 'type': 'referenceNda'}, format='multipart').json()

        self.assertEqual(set(first), set(second))
        self.assertEqual(set(first['parsedContent']), {'text', 'html', 'elements', 'pages'})
        self.assertEqual(set(first['parsedContent']), set(second['parsedContent']))

    def test_get_not_allowed(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)


class SupportedDocumentTests(TestCase):

    def test_extension_is_enough(self):
        self.assertTrue(is_supported_document(make_pdf('NDA.PDF', content_type='application/octet-stream')))
        self.assertTrue(is_supported_document(make_pdf('nda.doc', content_type='application/octet-stream')))

    def test_content_type_is_enough(self):
        self.assertTrue(is_supported_document(make_pdf('nda', content_type='application/msword')))
        self.assertTrue(is_supported_document(make_pdf('nda', content_type='application/pdf')))

    def test_rejects_other_files(self):
        self.assertFalse(is_supported_document(make_pdf('nda.png', content_type='image/png')))
