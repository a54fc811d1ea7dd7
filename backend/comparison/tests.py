import copy
import io
import os
import tempfile
import threading
from unittest.mock import Mock, patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from .client import AnalysisRequestError, NdaCheckerClient
from .demo import DEMO_ANALYSIS_RESULT, DEMO_CUSTOMER_NDA, DEMO_REFERENCE_NDA
from .orchestrator import CancellationToken, UploadCancelled
from .render import (
    DEFAULT_ACCEPTABLE_TERM,
    acceptable_terms,
    count_risks_by_severity,
    filter_sections,
    key_concerns,
    match_level,
    negotiation_points,
    render_analysis,
    risk_weight,
    section_excerpt,
)
from .report import (
    REPORT_FONT_FAMILY,
    build_report_markdown,
    generate_pdf_from_markdown,
    report_style_css,
)

DOCUMENT_TEXT = (
    "The Receiving Party shall protect all Confidential Information carefully. "
    "The parties met in Seoul on a Tuesday afternoon. "
    "Payment is due within thirty days of invoice."
)


def stored_payload():
    return {
        'analysisResult': copy.deepcopy(DEMO_ANALYSIS_RESULT),
        'referenceNda': copy.deepcopy(DEMO_REFERENCE_NDA),
        'customerNda': copy.deepcopy(DEMO_CUSTOMER_NDA),
    }


class RiskDisplayTests(SimpleTestCase):

    def test_risk_weight(self):
        self.assertEqual(risk_weight('low'), 25)
        self.assertEqual(risk_weight('medium'), 60)
        self.assertEqual(risk_weight('high'), 85)
        self.assertEqual(risk_weight(None), 0)

    def test_count_risks_by_severity(self):
        counts = count_risks_by_severity(DEMO_ANALYSIS_RESULT['risks'])

        self.assertEqual(counts, {'high': 2, 'medium': 1, 'low': 1})
        self.assertEqual(sum(counts.values()), len(DEMO_ANALYSIS_RESULT['risks']))

    def test_match_level_thresholds(self):
        self.assertEqual(match_level(80), 'high')
        self.assertEqual(match_level(79), 'medium')
        self.assertEqual(match_level(50), 'medium')
        self.assertEqual(match_level(49), 'low')

    def test_key_concerns_order(self):
        concerns = key_concerns(DEMO_ANALYSIS_RESULT)

        self.assertEqual([c['text'] for c in concerns[:3]], [
            'Extended 5-Year Term with Auto-Renewal',
            'Liquidated Damages Clause',
            'Written Authorization Requirement',
        ])
        self.assertEqual(concerns[2]['severity'], 'medium')
        self.assertEqual(concerns[3]['text'], 'Extended 5-year confidentiality term')

    def test_acceptable_terms_and_negotiation_points(self):
        self.assertEqual(acceptable_terms(DEMO_ANALYSIS_RESULT), ['Certified Destruction Requirement'])
        self.assertEqual(len(negotiation_points(DEMO_ANALYSIS_RESULT)), 3)

    def test_defaults_without_risks(self):
        result = {'sections': [], 'risks': [], 'summary': {'overallRisk': 'low', 'keyIssues': [], 'recommendation': ''}}

        self.assertEqual(acceptable_terms(result), [DEFAULT_ACCEPTABLE_TERM])
        self.assertEqual(negotiation_points(result)[0]['title'], 'General Review')
        self.assertEqual(key_concerns(result), [])


class SectionFilterTests(SimpleTestCase):

    def setUp(self):
        self.sections = DEMO_ANALYSIS_RESULT['sections']
        self.risks = DEMO_ANALYSIS_RESULT['risks']

    def test_filters(self):
        self.assertEqual(len(filter_sections(self.sections, 'all')), 5)
        self.assertEqual([s['match'] for s in filter_sections(self.sections, 'different')], [75, 60, 45])
        self.assertEqual([s['match'] for s in filter_sections(self.sections, 'similar')], [90, 85])

    def test_risky_filter(self):
        titles = [s['title'] for s in filter_sections(self.sections, 'risky', risks=self.risks)]

        self.assertNotIn('1. Definitions', titles)
        self.assertIn('3. Term and Termination', titles)
        self.assertEqual(len(titles), 4)

    def test_search_is_case_insensitive(self):
        found = filter_sections(self.sections, 'all', search='LIQUIDATED')

        self.assertEqual([s['title'] for s in found], ['5. Remedies'])

    def test_unknown_filter(self):
        with self.assertRaises(ValueError):
            filter_sections(self.sections, 'everything')


class SectionExcerptTests(SimpleTestCase):

    def test_keyword_match(self):
        excerpt = section_excerpt(DOCUMENT_TEXT, 'Confidential Information', [], 'reference')

        self.assertEqual(excerpt, 'The Receiving Party shall protect all Confidential Information carefully')

    def test_positional_fallback(self):
        sections = [{'title': 'Preamble'}, {'title': 'Payment'}]

        excerpt = section_excerpt(DOCUMENT_TEXT, 'Payment', sections, 'reference')

        self.assertEqual(excerpt, 'Payment is due within thirty days of invoice')

    def test_placeholder_when_past_the_end(self):
        sections = [{'title': 'A'}, {'title': 'B'}, {'title': 'C'}, {'title': 'Payment'}]

        excerpt = section_excerpt(DOCUMENT_TEXT, 'Payment', sections, 'customer')

        self.assertEqual(excerpt, 'Section content from customer NDA...')

    def test_empty_text(self):
        self.assertEqual(section_excerpt('', 'Term', [], 'reference'), 'Content not available')
        self.assertEqual(section_excerpt('Short. Tiny.', 'Term', [], 'reference'), 'Content not available')

    def test_truncation(self):
        text = 'The confidential ' + 'x' * 400 + '.'

        excerpt = section_excerpt(text, 'Confidential Information', [], 'reference')

        self.assertEqual(len(excerpt), 303)
        self.assertTrue(excerpt.endswith('...'))

    def test_korean_keywords(self):
        text = "본 계약의 기간은 체결일로부터 삼 년으로 한다. 기타 사항은 별도로 협의하여 정한다."

        excerpt = section_excerpt(text, 'Term', [], 'reference')

        self.assertEqual(excerpt, '본 계약의 기간은 체결일로부터 삼 년으로 한다')


class RenderAnalysisTests(SimpleTestCase):

    def test_render_demo(self):
        tabs = render_analysis(DEMO_ANALYSIS_RESULT, DEMO_REFERENCE_NDA, DEMO_CUSTOMER_NDA)

        self.assertIsNone(tabs['error'])
        self.assertEqual(tabs['comparison']['referenceFileName'], 'Standard_Company_NDA_v2.1.pdf')
        self.assertEqual(len(tabs['comparison']['sections']), 5)
        row = tabs['comparison']['sections'][2]
        self.assertEqual(row['matchLevel'], 'medium')
        self.assertIn('five (5) years', row['customerExcerpt'])
        self.assertIn('three (3) years', row['referenceExcerpt'])
        self.assertEqual(tabs['comparison']['sections'][4]['matchLevel'], 'low')
        self.assertEqual(tabs['risks']['overallRiskWeight'], 85)
        self.assertEqual(tabs['risks']['totalRisks'], 4)
        self.assertEqual(tabs['summary']['overallRisk'], 'high')

    def test_render_fallback_marker(self):
        result = dict(DEMO_ANALYSIS_RESULT, error='Analysis performed with fallback system due to AI service unavailability')

        tabs = render_analysis(result, DEMO_REFERENCE_NDA, DEMO_CUSTOMER_NDA)

        self.assertTrue(tabs['error'])

    def test_render_without_sections(self):
        result = {'sections': [], 'risks': [], 'summary': {'overallRisk': 'low', 'keyIssues': [], 'recommendation': 'Sign'}}

        tabs = render_analysis(result, DEMO_REFERENCE_NDA, DEMO_CUSTOMER_NDA)

        self.assertFalse(tabs['comparison']['hasSections'])
        self.assertEqual(tabs['risks']['counts'], {'high': 0, 'medium': 0, 'low': 0})


class ComparisonSessionViewTests(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.url = '/api/comparison/'

    def test_get_without_stored_comparison(self):
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.json(), {'error': 'No comparison results found', 'redirect': '/'})

    def test_store_and_render(self):
        response = self.client.post(self.url, stored_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()
        self.assertEqual(data['referenceNda'], {'fileName': 'Standard_Company_NDA_v2.1.pdf'})
        self.assertEqual(data['customerNda'], {'fileName': 'Customer_XYZ_NDA_Modified.pdf'})
        self.assertEqual(len(data['comparison']['sections']), 5)
        self.assertEqual(data['risks']['counts']['high'], 2)

    def test_render_with_filter_and_search(self):
        self.client.post(self.url, stored_payload(), format='json')

        response = self.client.get(self.url, {'filter': 'different', 'search': 'term'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        titles = [s['title'] for s in response.json()['comparison']['sections']]
        self.assertEqual(titles, ['3. Term and Termination'])

    def test_invalid_filter(self):
        self.client.post(self.url, stored_payload(), format='json')

        response = self.client.get(self.url, {'filter': 'everything'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_store_keeps_fallback_marker(self):
        payload = stored_payload()
        payload['analysisResult']['error'] = 'Analysis performed with fallback system due to AI service unavailability'
        self.client.post(self.url, payload, format='json')

        response = self.client.get(self.url)

        self.assertEqual(response.json()['error'], payload['analysisResult']['error'])

    def test_store_rejects_partial_payload(self):
        payload = stored_payload()
        del payload['customerNda']

        response = self.client.post(self.url, payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['error'], 'Invalid comparison data')
        self.assertEqual(self.client.get(self.url).status_code, status.HTTP_404_NOT_FOUND)

    def test_store_rejects_invalid_result(self):
        payload = stored_payload()
        payload['analysisResult']['summary']['overallRisk'] = 'severe'

        response = self.client.post(self.url, payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_clears_comparison(self):
        self.client.post(self.url, stored_payload(), format='json')

        response = self.client.delete(self.url)

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(self.client.get(self.url).status_code, status.HTTP_404_NOT_FOUND)

    def test_sessions_are_isolated(self):
        self.client.post(self.url, stored_payload(), format='json')

        other = APIClient()

        self.assertEqual(other.get(self.url).status_code, status.HTTP_404_NOT_FOUND)


class DemoComparisonViewTests(TestCase):

    def test_demo(self):
        response = APIClient().get('/api/comparison/demo/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()
        self.assertEqual(data['summary']['overallRisk'], 'high')
        self.assertEqual(len(data['comparison']['sections']), 5)

    def test_demo_risky_filter(self):
        response = APIClient().get('/api/comparison/demo/', {'filter': 'risky'})

        self.assertEqual(len(response.json()['comparison']['sections']), 4)


class ReportTests(TestCase):

    def test_report_markdown(self):
        report = build_report_markdown(stored_payload())

        self.assertIn('# NDA Comparison Report', report)
        self.assertIn('**Standard_Company_NDA_v2.1.pdf**', report)
        self.assertIn('| 5. Remedies | 45% |', report)
        self.assertIn('4 risk(s) identified: 2 high, 1 medium, 1 low.', report)
        self.assertIn('1. **Extended 5-Year Term with Auto-Renewal**', report)

    def test_report_escapes_table_cells(self):
        payload = stored_payload()
        payload['analysisResult']['sections'][0]['differences'] = 'A | B'

        report = build_report_markdown(payload)

        self.assertIn('A \\| B', report)

    def test_generate_pdf(self):
        pdf_file = generate_pdf_from_markdown('# Report\n\nSome text.')

        self.assertTrue(pdf_file.read().startswith(b'%PDF'))

    def test_download_report(self):
        client = APIClient()
        client.post('/api/comparison/', stored_payload(), format='json')

        response = client.get('/api/comparison/report/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertIn('nda_comparison_report.pdf', response['Content-Disposition'])
        self.assertTrue(b''.join(response.streaming_content).startswith(b'%PDF'))

    def test_report_font(self):
        self.assertNotIn('@font-face', report_style_css())

        css = report_style_css('/usr/share/fonts/NotoSansKR-Regular.ttf')

        self.assertIn('@font-face', css)
        self.assertIn('src: url("/usr/share/fonts/NotoSansKR-Regular.ttf")', css)
        self.assertIn(f'font-family: {REPORT_FONT_FAMILY}, Helvetica', css)

    @override_settings(NDA_REPORT_FONT_PATH='/fonts/NanumGothic.ttf')
    @patch('comparison.views.generate_pdf_from_markdown')
    def test_download_report_uses_configured_font(self, mock_generate):
        mock_generate.return_value = io.BytesIO(b'%PDF-1.4 report')
        client = APIClient()
        client.post('/api/comparison/', stored_payload(), format='json')

        response = client.get('/api/comparison/report/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(mock_generate.call_args[1]['font_path'], '/fonts/NanumGothic.ttf')

    def test_download_report_without_comparison(self):
        response = APIClient().get('/api/comparison/report/')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    @patch('comparison.views.generate_pdf_from_markdown')
    def test_download_report_generation_error(self, mock_generate):
        mock_generate.side_effect = Exception('bad html')
        client = APIClient()
        client.post('/api/comparison/', stored_payload(), format='json')

        response = client.get('/api/comparison/report/')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)


class NdaCheckerClientTests(SimpleTestCase):

    def setUp(self):
        self.http = Mock()
        self.client = NdaCheckerClient('http://localhost:8000/', session=self.http)

    def test_upload(self):
        self.http.post.return_value.json.return_value = {'success': True}

        result = self.client.upload('nda.pdf', io.BytesIO(b'%PDF'), 'referenceNda', cancel_token=CancellationToken())

        self.assertEqual(result, {'success': True})
        args, kwargs = self.http.post.call_args
        self.assertEqual(args[0], 'http://localhost:8000/api/upload/')
        self.assertEqual(kwargs['data'], {'type': 'referenceNda'})
        self.assertEqual(kwargs['files']['file'][0], 'nda.pdf')

    def test_upload_cancelled_before_sending(self):
        token = CancellationToken()
        token.cancel()

        with self.assertRaises(UploadCancelled):
            self.client.upload('nda.pdf', io.BytesIO(b'%PDF'), 'referenceNda', cancel_token=token)
        self.http.post.assert_not_called()

    def test_upload_non_json_response(self):
        self.http.post.return_value.status_code = 502
        self.http.post.return_value.json.side_effect = ValueError('not json')

        result = self.client.upload('nda.pdf', io.BytesIO(b'%PDF'), 'customerNda')

        self.assertFalse(result['success'])
        self.assertIn('502', result['error'])

    def test_analyze(self):
        self.http.post.return_value.ok = True
        self.http.post.return_value.json.return_value = DEMO_ANALYSIS_RESULT

        result = self.client.analyze('reference', 'customer')

        self.assertEqual(result, DEMO_ANALYSIS_RESULT)
        self.assertEqual(self.http.post.call_args[1]['json'], {'referenceText': 'reference', 'customerText': 'customer'})

    def test_analyze_error_status(self):
        self.http.post.return_value.ok = False
        self.http.post.return_value.status_code = 400

        with self.assertRaisesMessage(AnalysisRequestError, 'Analysis failed: 400'):
            self.client.analyze('', 'customer')

    def test_upload_cancelled_while_in_flight(self):
        """The request completes, but its response is not handed back."""
        token = CancellationToken()
        self.http.post.side_effect = lambda *args, **kwargs: token.cancel() or Mock()

        with self.assertRaises(UploadCancelled):
            self.client.upload('nda.pdf', io.BytesIO(b'%PDF'), 'referenceNda', cancel_token=token)
        self.http.post.assert_called_once()

    def test_fetch_comparison_not_found(self):
        self.http.get.return_value.status_code = 404

        self.assertIsNone(self.client.fetch_comparison())

    def test_fetch_comparison(self):
        self.http.get.return_value.status_code = 200
        self.http.get.return_value.json.return_value = {'summary': {'overallRisk': 'high'}}

        data = self.client.fetch_comparison(search='term', section_filter='risky')

        self.assertEqual(data['summary']['overallRisk'], 'high')
        self.assertEqual(self.http.get.call_args[1]['params'], {'search': 'term', 'filter': 'risky'})

    def test_clear_comparison(self):
        self.client.clear_comparison()

        self.http.delete.assert_called_once_with('http://localhost:8000/api/comparison/')
        self.http.delete.return_value.raise_for_status.assert_called_once()

    @patch('comparison.client.http_requests.Session')
    def test_session_per_thread(self, mock_session_class):
        mock_session_class.side_effect = lambda: Mock()
        client = NdaCheckerClient('http://localhost:8000')
        sessions = {}

        def worker(name):
            sessions[name] = (client.http, client.http)

        threads = [threading.Thread(target=worker, args=(name,)) for name in ('reference', 'customer')]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        self.assertIs(sessions['reference'][0], sessions['reference'][1])
        self.assertIsNot(sessions['reference'][0], sessions['customer'][0])
        self.assertEqual(mock_session_class.call_count, 2)


class FakeCheckerClient:
    """Stands in for NdaCheckerClient in the management command."""

    instances = []

    def __init__(self, base_url, session=None):
        self.base_url = base_url
        self.stored = None
        self.upload_results = {}
        self.analysis = DEMO_ANALYSIS_RESULT
        FakeCheckerClient.instances.append(self)

    def upload(self, file_name, stream, document_type, cancel_token=None):
        if document_type in self.upload_results:
            return self.upload_results[document_type]
        source = DEMO_REFERENCE_NDA if document_type == 'referenceNda' else DEMO_CUSTOMER_NDA
        return {
            'success': True,
            'message': f'{document_type} uploaded and parsed successfully',
            'fileName': file_name,
            'fileSize': len(stream.read()),
            'documentType': document_type,
            'parsedContent': source['parsedContent'],
        }

    def analyze(self, reference_text, customer_text):
        return self.analysis

    def store_comparison(self, payload):
        self.stored = payload

    def download_report(self):
        return b'%PDF-1.4 report'


@patch('comparison.management.commands.compare_ndas.NdaCheckerClient', FakeCheckerClient)
class CompareNdasCommandTests(SimpleTestCase):

    def setUp(self):
        FakeCheckerClient.instances = []
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.reference = os.path.join(self.tmp_dir.name, 'reference.pdf')
        self.customer = os.path.join(self.tmp_dir.name, 'customer.pdf')
        for path in (self.reference, self.customer):
            with open(path, 'wb') as handle:
                handle.write(b'%PDF-1.4 nda')

    def tearDown(self):
        self.tmp_dir.cleanup()

    def test_compare(self):
        out = io.StringIO()

        call_command('compare_ndas', self.reference, self.customer, stdout=out)

        output = out.getvalue()
        self.assertIn('reference.pdf: parsed 1 page(s)', output)
        self.assertIn('Overall risk: high', output)
        self.assertIn('45%  5. Remedies', output)
        self.assertIn('Risks (2 high, 1 medium, 1 low)', output)

    def test_compare_with_report(self):
        report_path = os.path.join(self.tmp_dir.name, 'report.pdf')

        call_command('compare_ndas', self.reference, self.customer, '--report', report_path, stdout=io.StringIO())

        with open(report_path, 'rb') as handle:
            self.assertEqual(handle.read(), b'%PDF-1.4 report')
        stored = FakeCheckerClient.instances[0].stored
        self.assertEqual(stored['customerNda']['fileName'], 'customer.pdf')

    def test_missing_file(self):
        with self.assertRaisesMessage(CommandError, 'File not found'):
            call_command('compare_ndas', self.reference, os.path.join(self.tmp_dir.name, 'nope.pdf'))

    def test_upload_failure(self):
        original_init = FakeCheckerClient.__init__

        def failing_init(client, base_url, session=None):
            original_init(client, base_url, session)
            client.upload_results['customerNda'] = {
                'success': False,
                'error': 'Failed to parse document',
                'details': '500 - Internal Server Error',
            }

        with patch.object(FakeCheckerClient, '__init__', failing_init):
            with self.assertRaisesMessage(CommandError, 'Failed to parse document'):
                call_command('compare_ndas', self.reference, self.customer, stdout=io.StringIO())
