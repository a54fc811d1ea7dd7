import json
from unittest.mock import Mock, patch

from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from .utils import (
    FALLBACK_ERROR_MESSAGE,
    build_analysis_messages,
    build_fallback_analysis,
    generate_nda_analysis,
)

REFERENCE_TEXT = "The Receiving Party shall keep Confidential Information secret for 2 years."
CUSTOMER_TEXT = "The Receiving Party shall keep Confidential Information secret for 5 years with automatic renewal."

VALID_ANALYSIS = {
    "sections": [
        {"title": "Term", "match": 40, "differences": "Customer extends term to 5 years"},
        {"title": "Confidential Information", "match": 95, "differences": "Identical definitions"},
    ],
    "risks": [
        {
            "section": "Term",
            "severity": "high",
            "title": "Extended term",
            "description": "Five year term with automatic renewal",
            "recommendation": "Negotiate back to 2 years",
        }
    ],
    "summary": {
        "overallRisk": "medium",
        "keyIssues": ["Term length"],
        "recommendation": "Negotiate the term before signing",
    },
}


def make_chat_response(content, status_code=200):
    response = Mock()
    response.ok = 200 <= status_code < 300
    response.status_code = status_code
    response.text = 'upstream failure'
    response.json.return_value = {
        'choices': [{'message': {'role': 'assistant', 'content': content}}],
    }
    return response


@override_settings(UPSTAGE_API_KEY='test-key')
class AnalyzeNdasViewTests(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.url = '/api/analyze/'
        self.payload = {'referenceText': REFERENCE_TEXT, 'customerText': CUSTOMER_TEXT}

    @patch('utils.upstage_client.http_requests.post')
    def test_analyze_success(self, mock_post):
        """A schema-conforming model answer is returned as is, without the error marker."""
        mock_post.return_value = make_chat_response(json.dumps(VALID_ANALYSIS))

        response = self.client.post(self.url, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json(), VALID_ANALYSIS)
        self.assertNotIn('error', response.json())
        self.assertFalse(response.has_header('X-Analysis-Fallback'))

    @patch('utils.upstage_client.http_requests.post')
    def test_analyze_sends_both_texts(self, mock_post):
        mock_post.return_value = make_chat_response(json.dumps(VALID_ANALYSIS))

        self.client.post(self.url, self.payload, format='json')

        mock_post.assert_called_once()
        payload = mock_post.call_args[1]['json']
        self.assertEqual(payload['reasoning_effort'], 'high')
        self.assertEqual(payload['response_format']['json_schema']['name'], 'nda_analysis')
        self.assertTrue(payload['response_format']['json_schema']['strict'])
        self.assertEqual(payload['messages'][0]['role'], 'system')
        self.assertIn(REFERENCE_TEXT, payload['messages'][1]['content'])
        self.assertIn(CUSTOMER_TEXT, payload['messages'][1]['content'])

    @patch('utils.upstage_client.http_requests.post')
    def test_analyze_empty_reference(self, mock_post):
        response = self.client.post(self.url, {'referenceText': '', 'customerText': CUSTOMER_TEXT}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json(), {'error': 'Both reference and customer NDA texts are required'})
        mock_post.assert_not_called()

    @patch('utils.upstage_client.http_requests.post')
    def test_analyze_missing_customer(self, mock_post):
        response = self.client.post(self.url, {'referenceText': REFERENCE_TEXT}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        mock_post.assert_not_called()

    @patch('utils.upstage_client.http_requests.post')
    def test_analyze_malformed_body(self, mock_post):
        response = self.client.post(self.url, '{"referenceText": ', content_type='application/json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        mock_post.assert_not_called()

    @patch('utils.upstage_client.http_requests.post')
    def test_analyze_non_json_model_output(self, mock_post):
        """Prose instead of JSON gives exactly the fallback result, still with 200."""
        mock_post.return_value = make_chat_response('The customer NDA is riskier than the reference.')

        response = self.client.post(self.url, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json(), build_fallback_analysis())
        self.assertEqual(response.json()['error'], FALLBACK_ERROR_MESSAGE)
        self.assertEqual(response['X-Analysis-Fallback'], 'true')

    @patch('utils.upstage_client.http_requests.post')
    def test_analyze_upstream_error_status(self, mock_post):
        mock_post.return_value = make_chat_response('', status_code=502)

        response = self.client.post(self.url, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json(), build_fallback_analysis())

    @patch('utils.upstage_client.http_requests.post')
    def test_analyze_schema_mismatch(self, mock_post):
        invalid = json.loads(json.dumps(VALID_ANALYSIS))
        invalid['risks'][0]['severity'] = 'critical'
        mock_post.return_value = make_chat_response(json.dumps(invalid))

        response = self.client.post(self.url, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()['error'], FALLBACK_ERROR_MESSAGE)

    @patch('utils.upstage_client.http_requests.post')
    def test_analyze_match_out_of_range(self, mock_post):
        invalid = json.loads(json.dumps(VALID_ANALYSIS))
        invalid['sections'][0]['match'] = 140
        mock_post.return_value = make_chat_response(json.dumps(invalid))

        response = self.client.post(self.url, self.payload, format='json')

        self.assertEqual(response.json(), build_fallback_analysis())

    @override_settings(UPSTAGE_API_KEY='')
    @patch('utils.upstage_client.http_requests.post')
    def test_analyze_without_api_key(self, mock_post):
        response = self.client.post(self.url, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()['error'], FALLBACK_ERROR_MESSAGE)
        mock_post.assert_not_called()

    @patch('analysis.views.generate_nda_analysis')
    def test_analyze_unexpected_error(self, mock_generate):
        mock_generate.side_effect = RuntimeError('boom')

        response = self.client.post(self.url, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.json(), {'error': 'Failed to analyze NDAs'})


@override_settings(UPSTAGE_API_KEY='test-key')
class GenerateNdaAnalysisTests(TestCase):

    @patch('utils.upstage_client.http_requests.post')
    def test_fractional_match_is_rounded(self, mock_post):
        result = json.loads(json.dumps(VALID_ANALYSIS))
        result['sections'][0]['match'] = 87.6
        mock_post.return_value = make_chat_response(json.dumps(result))

        analysis = generate_nda_analysis(REFERENCE_TEXT, CUSTOMER_TEXT)

        self.assertEqual(analysis['sections'][0]['match'], 88)

    @patch('utils.upstage_client.http_requests.post')
    def test_empty_choices_fall_back(self, mock_post):
        response = make_chat_response('')
        response.json.return_value = {'choices': []}
        mock_post.return_value = response

        analysis = generate_nda_analysis(REFERENCE_TEXT, CUSTOMER_TEXT)

        self.assertEqual(analysis, build_fallback_analysis())

    def test_fallback_copies_are_independent(self):
        first = build_fallback_analysis()
        first['sections'].clear()
        first['summary']['keyIssues'].append('Edited')

        second = build_fallback_analysis()

        self.assertEqual(len(second['sections']), 3)
        self.assertEqual(second['summary']['keyIssues'], ['Extended term', 'Indemnification clause', 'Jurisdiction requirements'])

    def test_fallback_content(self):
        fallback = build_fallback_analysis()

        self.assertEqual([section['match'] for section in fallback['sections']], [90, 75, 60])
        self.assertEqual([risk['severity'] for risk in fallback['risks']], ['high', 'medium'])
        self.assertEqual(fallback['summary']['overallRisk'], 'high')

    def test_build_analysis_messages(self):
        messages = build_analysis_messages('REF TEXT', 'CUSTOMER TEXT')

        self.assertEqual([message['role'] for message in messages], ['system', 'user'])
        self.assertIn('NDA', messages[0]['content'])
        self.assertLess(messages[1]['content'].index('REF TEXT'), messages[1]['content'].index('CUSTOMER TEXT'))
