from rest_framework import serializers

from analysis.serializers import AnalysisResultSerializer

from .orchestrator import DOCUMENT_TYPES


class StoredAnalysisResultSerializer(AnalysisResultSerializer):
    """AnalysisResult as handed back by the analyze endpoint, fallback marker included."""
    error = serializers.CharField(required=False, allow_blank=True)


class ParsedContentSerializer(serializers.Serializer):
    text = serializers.CharField(allow_blank=True, trim_whitespace=False)
    html = serializers.CharField(allow_blank=True, required=False, default='', trim_whitespace=False)
    elements = serializers.ListField(child=serializers.DictField(), required=False, default=list)
    pages = serializers.IntegerField(min_value=0, required=False, default=0)


class UploadedDocumentSerializer(serializers.Serializer):
    fileName = serializers.CharField()
    documentType = serializers.ChoiceField(choices=DOCUMENT_TYPES, required=False)
    parsedContent = ParsedContentSerializer()


class StoredComparisonSerializer(serializers.Serializer):
    """The session-storage payload: result plus both uploaded documents."""
    analysisResult = StoredAnalysisResultSerializer()
    referenceNda = UploadedDocumentSerializer()
    customerNda = UploadedDocumentSerializer()
