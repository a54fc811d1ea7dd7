import logging

from rest_framework import status
from rest_framework.exceptions import ParseError
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .serializers import AnalyzeRequestSerializer
from .utils import generate_nda_analysis

logger = logging.getLogger(__name__)

FALLBACK_HEADER = 'X-Analysis-Fallback'


@api_view(['POST'])
@permission_classes([AllowAny])
@parser_classes([JSONParser])
def analyze_ndas(request):
    """
    Compare a reference NDA with a customer NDA.

    Always answers 200 once both texts are present; a degraded result is
    marked by an 'error' key in the body and the X-Analysis-Fallback header.
    """
    try:
        serializer = AnalyzeRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({
                'error': 'Both reference and customer NDA texts are required'
            }, status=status.HTTP_400_BAD_REQUEST)

        analysis = generate_nda_analysis(
            serializer.validated_data['referenceText'],
            serializer.validated_data['customerText'],
        )

        response = Response(analysis, status=status.HTTP_200_OK)
        if analysis.get('error'):
            response[FALLBACK_HEADER] = 'true'
        return response

    except ParseError:
        return Response({
            'error': 'Both reference and customer NDA texts are required'
        }, status=status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        logger.error(f"Error analyzing NDAs: {e}", exc_info=True)
        return Response({
            'error': 'Failed to analyze NDAs'
        }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
