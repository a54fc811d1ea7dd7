import json
import logging

from django.conf import settings
from django.http import FileResponse
from rest_framework import status
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .demo import DEMO_ANALYSIS_RESULT, DEMO_CUSTOMER_NDA, DEMO_REFERENCE_NDA
from .render import SECTION_FILTERS, render_analysis
from .report import build_report_markdown, generate_pdf_from_markdown
from .serializers import StoredComparisonSerializer

logger = logging.getLogger(__name__)

SESSION_KEYS = ('analysisResult', 'referenceNda', 'customerNda')


def _get_stored_comparison(session):
    payload = {key: session.get(key) for key in SESSION_KEYS}
    if not all(payload.values()):
        return None
    return payload


def _plain(data):
    """Serializer output to plain JSON-compatible dicts and lists."""
    return json.loads(json.dumps(data))


def _render_response(request, payload):
    section_filter = request.query_params.get('filter', 'all') or 'all'
    search = request.query_params.get('search', '')
    if section_filter not in SECTION_FILTERS:
        return Response({
            'error': f"Invalid filter. Use one of: {', '.join(SECTION_FILTERS)}"
        }, status=status.HTTP_400_BAD_REQUEST)

    rendered = render_analysis(
        payload['analysisResult'],
        payload['referenceNda'],
        payload['customerNda'],
        search=search,
        section_filter=section_filter,
    )
    return Response({
        'referenceNda': {'fileName': payload['referenceNda'].get('fileName', '')},
        'customerNda': {'fileName': payload['customerNda'].get('fileName', '')},
        **rendered,
    }, status=status.HTTP_200_OK)


@api_view(['GET', 'POST', 'DELETE'])
@permission_classes([AllowAny])
@parser_classes([JSONParser])
def comparison_session(request):
    """
    Session storage for the last comparison.

    POST keeps the result and both documents for this browser session, GET
    renders the three tabs from it, DELETE is "New Comparison".
    """
    if request.method == 'POST':
        serializer = StoredComparisonSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({
                'error': 'Invalid comparison data',
                'details': serializer.errors,
            }, status=status.HTTP_400_BAD_REQUEST)

        stored = _plain(serializer.validated_data)
        for key in SESSION_KEYS:
            request.session[key] = stored[key]
        logger.info(
            f"Stored comparison of {stored['referenceNda']['fileName']} "
            f"with {stored['customerNda']['fileName']} in session"
        )
        return Response({'status': 'stored'}, status=status.HTTP_201_CREATED)

    if request.method == 'DELETE':
        for key in SESSION_KEYS:
            request.session.pop(key, None)
        return Response(status=status.HTTP_204_NO_CONTENT)

    payload = _get_stored_comparison(request.session)
    if payload is None:
        return Response({
            'error': 'No comparison results found',
            'redirect': '/',
        }, status=status.HTTP_404_NOT_FOUND)
    return _render_response(request, payload)


@api_view(['GET'])
@permission_classes([AllowAny])
def demo_comparison(request):
    """Rendered tabs for the built-in sample NDAs."""
    payload = {
        'analysisResult': DEMO_ANALYSIS_RESULT,
        'referenceNda': DEMO_REFERENCE_NDA,
        'customerNda': DEMO_CUSTOMER_NDA,
    }
    return _render_response(request, payload)


@api_view(['GET'])
@permission_classes([AllowAny])
def download_report(request):
    """Download the stored comparison as a PDF report."""
    payload = _get_stored_comparison(request.session)
    if payload is None:
        return Response({
            'error': 'No comparison results found',
            'redirect': '/',
        }, status=status.HTTP_404_NOT_FOUND)

    try:
        pdf_file = generate_pdf_from_markdown(
            build_report_markdown(payload),
            font_path=settings.NDA_REPORT_FONT_PATH,
        )
    except Exception as e:
        logger.error(f"Error generating comparison report: {e}", exc_info=True)
        return Response({'error': f'Error generating PDF: {e}'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    response = FileResponse(pdf_file, content_type='application/pdf')
    response['Content-Disposition'] = 'attachment; filename="nda_comparison_report.pdf"'
    return response
