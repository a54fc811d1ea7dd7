import logging

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from utils.upstage_client import UpstageError, parse_document

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = ('referenceNda', 'customerNda')

ALLOWED_EXTENSIONS = ('pdf', 'doc', 'docx')
ALLOWED_CONTENT_TYPE_MARKERS = ('pdf', 'msword', 'wordprocessingml')


def is_supported_document(uploaded_file) -> bool:
    """PDF, DOC or DOCX by extension or by declared media type."""
    name = (uploaded_file.name or '').lower()
    extension = name.rsplit('.', 1)[-1] if '.' in name else ''
    if extension in ALLOWED_EXTENSIONS:
        return True
    content_type = (getattr(uploaded_file, 'content_type', None) or '').lower()
    return any(marker in content_type for marker in ALLOWED_CONTENT_TYPE_MARKERS)


@api_view(['POST'])
@permission_classes([AllowAny])
@parser_classes([MultiPartParser, FormParser])
def upload_document(request):
    """Upload one NDA and parse it with Upstage Document Parse"""
    try:
        uploaded_file = request.FILES.get('file')
        document_type = request.data.get('type')

        if not uploaded_file:
            return Response({
                'success': False,
                'error': 'No file provided'
            }, status=status.HTTP_400_BAD_REQUEST)

        if document_type not in DOCUMENT_TYPES:
            return Response({
                'success': False,
                'error': 'Invalid document type'
            }, status=status.HTTP_400_BAD_REQUEST)

        if not is_supported_document(uploaded_file):
            return Response({
                'success': False,
                'error': 'Only PDF, DOC, and DOCX files are supported'
            }, status=status.HTTP_400_BAD_REQUEST)

        if uploaded_file.size > settings.NDA_MAX_UPLOAD_BYTES:
            return Response({
                'success': False,
                'error': 'File size exceeds the upload limit'
            }, status=status.HTTP_400_BAD_REQUEST)

        uploaded_file.seek(0)

        try:
            parsed_content = parse_document(uploaded_file)
        except UpstageError as e:
            logger.error(f"Error parsing {uploaded_file.name} with Upstage: {e}")
            return Response({
                'success': False,
                'error': 'Failed to parse document',
                'details': str(e),
                'fileName': uploaded_file.name,
                'fileSize': uploaded_file.size,
                'documentType': document_type,
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response({
            'success': True,
            'message': f'{document_type} uploaded and parsed successfully',
            'fileName': uploaded_file.name,
            'fileSize': uploaded_file.size,
            'documentType': document_type,
            'parsedContent': parsed_content,
        }, status=status.HTTP_200_OK)

    except Exception as e:
        logger.error(f"Error uploading file: {e}", exc_info=True)
        return Response({
            'success': False,
            'error': 'Failed to upload file',
            'details': str(e) if settings.DEBUG else None,
        }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
