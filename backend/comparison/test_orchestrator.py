import io
import json
import threading
from unittest.mock import Mock, patch

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from .orchestrator import (
    CUSTOMER_NDA,
    PROGRESS_COMPLETE,
    PROGRESS_PREPARING,
    PROGRESS_PROCESSING,
    PROGRESS_SENDING,
    REFERENCE_NDA,
    AnalysisState,
    CancellationToken,
    ComparisonNotReady,
    ComparisonSession,
    SlotState,
    UploadCancelled,
    UploadSlot,
)

ANALYSIS_RESULT = {
    'sections': [{'title': 'Term', 'match': 50, 'differences': 'Longer term'}],
    'risks': [{
        'section': 'Term',
        'severity': 'medium',
        'title': 'Longer term',
        'description': 'Three years instead of two',
        'recommendation': 'Negotiate',
    }],
    'summary': {'overallRisk': 'medium', 'keyIssues': ['Term'], 'recommendation': 'Negotiate the term'},
}


def upload_payload(file_name, document_type, text='Confidential Information', pages=1):
    return {
        'success': True,
        'message': f'{document_type} uploaded and parsed successfully',
        'fileName': file_name,
        'fileSize': 42,
        'documentType': document_type,
        'parsedContent': {'text': text, 'html': f'<p>{text}</p>', 'elements': [], 'pages': pages},
    }


class FakeTransport:
    """Answers uploads immediately from a canned payload per role."""

    def __init__(self, analysis=None):
        self.analysis = analysis or ANALYSIS_RESULT
        self.upload_results = {}
        self.analyze_calls = []

    def upload(self, file_name, stream, document_type, cancel_token=None):
        if document_type in self.upload_results:
            return self.upload_results[document_type]
        return upload_payload(file_name, document_type, text=f'{document_type} text')

    def analyze(self, reference_text, customer_text):
        self.analyze_calls.append((reference_text, customer_text))
        if isinstance(self.analysis, Exception):
            raise self.analysis
        return self.analysis


class BlockingTransport(FakeTransport):
    """Holds every upload until release is set, like a slow Document Parse call."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()
        self.in_flight = 0
        self._condition = threading.Condition()

    def upload(self, file_name, stream, document_type, cancel_token=None):
        with self._condition:
            self.in_flight += 1
            self._condition.notify_all()
        self.started.set()
        self.release.wait(timeout=5)
        return upload_payload(file_name, document_type)

    def wait_for_uploads(self, count, timeout=5):
        with self._condition:
            return self._condition.wait_for(lambda: self.in_flight >= count, timeout=timeout)


class CancellationTokenTests(SimpleTestCase):

    def test_token_lifecycle(self):
        token = CancellationToken()
        self.assertFalse(token.cancelled)
        token.raise_if_cancelled()

        token.cancel()

        self.assertTrue(token.cancelled)
        with self.assertRaises(UploadCancelled):
            token.raise_if_cancelled()


class UploadSlotTests(SimpleTestCase):

    def setUp(self):
        self.slot = UploadSlot(REFERENCE_NDA)

    def test_invalid_document_type(self):
        with self.assertRaises(ValueError):
            UploadSlot('vendorNda')

    def test_success_transition(self):
        token = self.slot.start('reference.pdf', 42)
        self.assertEqual(self.slot.state, SlotState.UPLOADING)

        applied = self.slot.complete(token, upload_payload('reference.pdf', REFERENCE_NDA, pages=3))

        self.assertTrue(applied)
        self.assertEqual(self.slot.state, SlotState.SUCCESS)
        self.assertEqual(self.slot.document.file_name, 'reference.pdf')
        self.assertEqual(self.slot.document.parsed_content.pages, 3)

    def test_error_payload(self):
        token = self.slot.start('reference.pdf')

        self.slot.complete(token, {'success': False, 'error': 'Failed to parse document', 'details': '500 - boom'})

        self.assertEqual(self.slot.state, SlotState.ERROR)
        self.assertIsNone(self.slot.document)
        self.assertEqual(self.slot.result['details'], '500 - boom')

    def test_success_without_parsed_content_is_error(self):
        token = self.slot.start('reference.pdf')

        self.slot.complete(token, {'success': True, 'fileName': 'reference.pdf'})

        self.assertEqual(self.slot.state, SlotState.ERROR)

    def test_malformed_payload_is_error(self):
        broken = upload_payload('reference.pdf', REFERENCE_NDA)
        broken['parsedContent']['pages'] = 'n/a'

        for payload in (broken, None, ['not', 'a', 'dict'], {'success': True, 'parsedContent': 'text'}):
            with self.subTest(payload=payload):
                token = self.slot.start('reference.pdf')

                self.assertTrue(self.slot.complete(token, payload))
                self.assertEqual(self.slot.state, SlotState.ERROR)
                self.assertIsNone(self.slot.document)
                self.assertFalse(self.slot.result['success'])
                self.assertIn('Unexpected upload response', self.slot.result['error'])
                self.assertFalse(self.slot.cancel())

    def test_cancel_only_while_uploading(self):
        self.assertFalse(self.slot.cancel())

        token = self.slot.start('reference.pdf')
        self.assertTrue(self.slot.uploading)
        self.slot.complete(token, upload_payload('reference.pdf', REFERENCE_NDA))
        self.assertFalse(self.slot.uploading)

        self.assertFalse(self.slot.cancel())
        self.assertEqual(self.slot.state, SlotState.SUCCESS)

    def test_response_after_cancel_is_discarded(self):
        token = self.slot.start('reference.pdf')
        self.assertTrue(self.slot.cancel())

        applied = self.slot.complete(token, upload_payload('reference.pdf', REFERENCE_NDA))

        self.assertFalse(applied)
        self.assertEqual(self.slot.state, SlotState.CANCELLED)
        self.assertIsNone(self.slot.document)
        self.assertEqual(self.slot.result['error'], 'Upload was cancelled by user')
        self.assertFalse(self.slot.result['success'])

    def test_restart_supersedes_previous_upload(self):
        first = self.slot.start('old.pdf')
        second = self.slot.start('new.pdf')

        self.assertTrue(first.cancelled)
        self.assertFalse(self.slot.complete(first, upload_payload('old.pdf', REFERENCE_NDA)))
        self.assertTrue(self.slot.complete(second, upload_payload('new.pdf', REFERENCE_NDA)))
        self.assertEqual(self.slot.document.file_name, 'new.pdf')

    def test_fail_after_cancel_is_discarded(self):
        token = self.slot.start('reference.pdf')
        self.slot.cancel()

        self.assertFalse(self.slot.fail(token, 'connection reset'))
        self.assertEqual(self.slot.state, SlotState.CANCELLED)

    def test_reset(self):
        token = self.slot.start('reference.pdf')
        self.slot.reset()

        self.assertTrue(token.cancelled)
        self.assertEqual(self.slot.state, SlotState.IDLE)
        self.assertIsNone(self.slot.file_name)
        self.assertIsNone(self.slot.result)


class ComparisonSessionUploadTests(SimpleTestCase):

    def setUp(self):
        self.transport = FakeTransport()
        self.session = ComparisonSession(self.transport, progress_delay=0)

    def tearDown(self):
        self.session.close()

    def test_upload_success(self):
        state = self.session.upload(REFERENCE_NDA, 'reference.pdf', io.BytesIO(b'%PDF'), 4)

        self.assertEqual(state, SlotState.SUCCESS)
        self.assertEqual(self.session.reference.document.text, 'referenceNda text')
        self.assertEqual(self.session.customer.state, SlotState.IDLE)

    def test_upload_transport_error(self):
        transport = Mock()
        transport.upload.side_effect = ConnectionError('connection refused')
        session = ComparisonSession(transport, progress_delay=0)

        state = session.upload(CUSTOMER_NDA, 'customer.pdf', io.BytesIO(b'%PDF'))

        self.assertEqual(state, SlotState.ERROR)
        self.assertEqual(session.customer.result['error'], 'connection refused')

    def test_invalid_document_type(self):
        with self.assertRaises(ValueError):
            self.session.upload('vendorNda', 'vendor.pdf', io.BytesIO(b'%PDF'))

    def test_malformed_response_keeps_compare_disabled(self):
        self.transport.upload_results[REFERENCE_NDA] = None
        bad_pages = upload_payload('customer.pdf', CUSTOMER_NDA)
        bad_pages['parsedContent']['pages'] = 'n/a'
        self.transport.upload_results[CUSTOMER_NDA] = bad_pages

        self.assertEqual(self.session.upload(REFERENCE_NDA, 'reference.pdf', io.BytesIO(b'%PDF')), SlotState.ERROR)
        self.assertEqual(self.session.upload(CUSTOMER_NDA, 'customer.pdf', io.BytesIO(b'%PDF')), SlotState.ERROR)
        self.assertFalse(self.session.can_compare)

        del self.transport.upload_results[REFERENCE_NDA]
        self.assertEqual(self.session.upload(REFERENCE_NDA, 'reference.pdf', io.BytesIO(b'%PDF')), SlotState.SUCCESS)

    def test_cancel_while_request_in_flight(self):
        """A response arriving after cancellation leaves the slot cancelled."""
        transport = BlockingTransport()
        session = ComparisonSession(transport, progress_delay=0)
        try:
            future = session.upload_async(REFERENCE_NDA, 'reference.pdf', io.BytesIO(b'%PDF'), 4)
            self.assertTrue(transport.started.wait(timeout=5))

            self.assertTrue(session.cancel_upload(REFERENCE_NDA))
            transport.release.set()

            self.assertEqual(future.result(timeout=5), SlotState.CANCELLED)
            self.assertEqual(session.reference.state, SlotState.CANCELLED)
            self.assertIsNone(session.reference.document)
            self.assertEqual(session.reference.result['error'], 'Upload was cancelled by user')
        finally:
            transport.release.set()
            session.close()

    def test_cancel_raised_by_transport(self):
        transport = Mock()

        def upload(file_name, stream, document_type, cancel_token=None):
            session.cancel_upload(document_type)
            cancel_token.raise_if_cancelled()

        transport.upload.side_effect = upload
        session = ComparisonSession(transport, progress_delay=0)

        state = session.upload(REFERENCE_NDA, 'reference.pdf', io.BytesIO(b'%PDF'))

        self.assertEqual(state, SlotState.CANCELLED)

    def test_cancel_does_not_touch_other_slot(self):
        transport = BlockingTransport()
        session = ComparisonSession(transport, progress_delay=0)
        try:
            reference = session.upload_async(REFERENCE_NDA, 'reference.pdf', io.BytesIO(b'%PDF'))
            customer = session.upload_async(CUSTOMER_NDA, 'customer.pdf', io.BytesIO(b'%PDF'))
            self.assertTrue(transport.wait_for_uploads(2))

            session.cancel_upload(CUSTOMER_NDA)
            transport.release.set()

            self.assertEqual(reference.result(timeout=5), SlotState.SUCCESS)
            self.assertEqual(customer.result(timeout=5), SlotState.CANCELLED)
        finally:
            transport.release.set()
            session.close()

    def test_change_file_returns_to_idle(self):
        self.session.upload(REFERENCE_NDA, 'reference.pdf', io.BytesIO(b'%PDF'))

        self.session.change_file(REFERENCE_NDA)

        self.assertEqual(self.session.reference.state, SlotState.IDLE)
        self.assertIsNone(self.session.reference.document)


class ComparisonSessionAnalysisTests(SimpleTestCase):

    def setUp(self):
        self.transport = FakeTransport()
        self.steps = []
        self.session = ComparisonSession(self.transport, progress_delay=0, on_progress=self.steps.append)

    def upload_both(self):
        self.session.upload(REFERENCE_NDA, 'reference.pdf', io.BytesIO(b'%PDF'))
        self.session.upload(CUSTOMER_NDA, 'customer.pdf', io.BytesIO(b'%PDF'))

    def test_compare_gated_until_both_succeed(self):
        self.assertFalse(self.session.can_compare)
        self.assertEqual(self.session.missing_documents_hint, 'Please upload both documents to enable comparison')

        self.session.upload(REFERENCE_NDA, 'reference.pdf', io.BytesIO(b'%PDF'))
        self.assertFalse(self.session.can_compare)
        self.assertEqual(self.session.missing_documents_hint, 'Please upload the customer NDA')
        with self.assertRaises(ComparisonNotReady):
            self.session.compare()
        self.assertEqual(self.transport.analyze_calls, [])

        self.session.upload(CUSTOMER_NDA, 'customer.pdf', io.BytesIO(b'%PDF'))
        self.assertTrue(self.session.can_compare)
        self.assertIsNone(self.session.missing_documents_hint)

    def test_failed_upload_keeps_compare_disabled(self):
        self.transport.upload_results[CUSTOMER_NDA] = {'success': False, 'error': 'Failed to parse document'}
        self.upload_both()

        self.assertFalse(self.session.can_compare)
        self.assertEqual(self.session.missing_documents_hint, 'Please upload the customer NDA')

    def test_compare_success(self):
        self.upload_both()

        result = self.session.compare()

        self.assertEqual(result, ANALYSIS_RESULT)
        self.assertEqual(self.session.analysis_state, AnalysisState.RESULT)
        self.assertEqual(self.transport.analyze_calls, [('referenceNda text', 'customerNda text')])
        self.assertEqual(self.steps, [PROGRESS_PREPARING, PROGRESS_SENDING, PROGRESS_PROCESSING, PROGRESS_COMPLETE])
        self.assertEqual(self.session.analysis_step, '')

    def test_compare_uses_html_when_text_is_empty(self):
        self.transport.upload_results[REFERENCE_NDA] = upload_payload('reference.pdf', REFERENCE_NDA, text='')
        self.upload_both()

        self.session.compare()

        self.assertEqual(self.transport.analyze_calls[0][0], '<p></p>')

    def test_compare_fallback_result_is_a_result(self):
        fallback = dict(ANALYSIS_RESULT, error='Analysis performed with fallback system due to AI service unavailability')
        self.transport.analysis = fallback
        self.upload_both()

        result = self.session.compare()

        self.assertEqual(result['error'], fallback['error'])
        self.assertEqual(self.session.analysis_state, AnalysisState.RESULT)

    def test_compare_request_failure(self):
        self.transport.analysis = RuntimeError('Analysis failed: 500')
        self.upload_both()

        result = self.session.compare()

        self.assertIsNone(result)
        self.assertEqual(self.session.analysis_state, AnalysisState.ERROR)
        self.assertEqual(self.session.analysis_error, 'Analysis failed: 500')
        self.assertTrue(self.session.can_compare)

    def test_compare_non_dict_response(self):
        self.transport.analysis = ['unexpected']
        self.upload_both()

        result = self.session.compare()

        self.assertIsNone(result)
        self.assertIsNone(self.session.analysis_result)
        self.assertEqual(self.session.analysis_state, AnalysisState.ERROR)
        self.assertIn('Unexpected analysis response', self.session.analysis_error)
        with self.assertRaises(ComparisonNotReady):
            self.session.to_storage()

    def test_failed_retry_clears_previous_result(self):
        self.upload_both()
        self.session.compare()

        self.transport.analysis = RuntimeError('Analysis failed: 502')
        self.session.compare()

        self.assertIsNone(self.session.analysis_result)
        with self.assertRaises(ComparisonNotReady):
            self.session.to_storage()

    def test_compare_disabled_while_analyzing(self):
        self.upload_both()
        self.session.analysis_state = AnalysisState.ANALYZING

        self.assertFalse(self.session.can_compare)
        with self.assertRaises(ComparisonNotReady):
            self.session.compare()

    def test_new_comparison_clears_everything(self):
        self.upload_both()
        self.session.compare()

        self.session.new_comparison()

        self.assertEqual(self.session.reference.state, SlotState.IDLE)
        self.assertEqual(self.session.customer.state, SlotState.IDLE)
        self.assertEqual(self.session.analysis_state, AnalysisState.IDLE)
        self.assertIsNone(self.session.analysis_result)

    def test_storage_round_trip(self):
        self.upload_both()
        self.session.compare()

        payload = self.session.to_storage()
        restored = ComparisonSession.from_storage(payload, progress_delay=0)

        self.assertEqual(set(payload), {'analysisResult', 'referenceNda', 'customerNda'})
        self.assertEqual(payload['referenceNda']['fileName'], 'reference.pdf')
        self.assertEqual(restored.analysis_state, AnalysisState.RESULT)
        self.assertEqual(restored.analysis_result, ANALYSIS_RESULT)
        self.assertEqual(restored.customer.document.text, 'customerNda text')

    def test_to_storage_without_result(self):
        self.upload_both()
        with self.assertRaises(ComparisonNotReady):
            self.session.to_storage()


class ApiTransport:
    """Drives the real upload and analyze views through the DRF test client."""

    def __init__(self, api_client):
        self.api = api_client

    def upload(self, file_name, stream, document_type, cancel_token=None):
        uploaded = SimpleUploadedFile(file_name, stream.read(), content_type='application/pdf')
        response = self.api.post('/api/upload/', {'file': uploaded, 'type': document_type}, format='multipart')
        return response.json()

    def analyze(self, reference_text, customer_text):
        response = self.api.post(
            '/api/analyze/',
            {'referenceText': reference_text, 'customerText': customer_text},
            format='json',
        )
        if response.status_code != 200:
            raise RuntimeError(f"Analysis failed: {response.status_code}")
        return response.json()


@override_settings(UPSTAGE_API_KEY='test-key')
class ComparisonFlowTests(TestCase):
    """Upload two NDAs, compare them and store the result for the comparison page."""

    def setUp(self):
        self.api = APIClient()
        self.session = ComparisonSession(ApiTransport(self.api), progress_delay=0)
        self.chat_payloads = []

    def fake_upstage(self, url, **kwargs):
        response = Mock()
        response.ok = True
        response.status_code = 200
        if url.endswith('document-digitization'):
            name = kwargs['files']['document'][0]
            response.json.return_value = {
                'content': {'html': f'<p>{name}</p>', 'text': f'Confidential Information clauses of {name}'},
                'elements': [{'category': 'paragraph', 'page': 1}],
                'usage': {'pages': 1},
            }
        else:
            self.chat_payloads.append(kwargs['json'])
            response.json.return_value = {
                'choices': [{'message': {'content': json.dumps(ANALYSIS_RESULT)}}],
            }
        return response

    @patch('utils.upstage_client.http_requests.post')
    def test_end_to_end(self, mock_post):
        mock_post.side_effect = self.fake_upstage

        self.session.upload(REFERENCE_NDA, 'reference.pdf', io.BytesIO(b'%PDF-1.4 reference'))
        self.session.upload(CUSTOMER_NDA, 'customer.pdf', io.BytesIO(b'%PDF-1.4 customer'))

        self.assertEqual(self.session.reference.state, SlotState.SUCCESS)
        self.assertEqual(self.session.reference.document.parsed_content.pages, 1)
        self.assertEqual(self.session.customer.state, SlotState.SUCCESS)

        result = self.session.compare()

        self.assertEqual(len(self.chat_payloads), 1)
        user_message = self.chat_payloads[0]['messages'][1]['content']
        self.assertIn('Confidential Information clauses of reference.pdf', user_message)
        self.assertIn('Confidential Information clauses of customer.pdf', user_message)
        self.assertGreaterEqual(len(result['sections']), 1)
        self.assertIn(result['summary']['overallRisk'], ('low', 'medium', 'high'))

        stored = self.api.post('/api/comparison/', self.session.to_storage(), format='json')
        self.assertEqual(stored.status_code, 201)

        page = self.api.get('/api/comparison/')
        self.assertEqual(page.status_code, 200)
        self.assertEqual(page.json()['referenceNda']['fileName'], 'reference.pdf')
        self.assertEqual(page.json()['summary']['overallRisk'], 'medium')
