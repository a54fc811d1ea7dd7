from rest_framework import serializers

RISK_LEVELS = ('low', 'medium', 'high')


class MatchPercentageField(serializers.FloatField):
    """
    Match percentage between 0 and 100.
    The model is asked for a number, so fractional values are rounded.
    """

    def __init__(self, **kwargs):
        kwargs.setdefault('min_value', 0)
        kwargs.setdefault('max_value', 100)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        return int(round(super().to_internal_value(data)))


class SectionComparisonSerializer(serializers.Serializer):
    title = serializers.CharField(allow_blank=True)
    match = MatchPercentageField()
    differences = serializers.CharField(allow_blank=True)


class RiskSerializer(serializers.Serializer):
    section = serializers.CharField(allow_blank=True)
    severity = serializers.ChoiceField(choices=RISK_LEVELS)
    title = serializers.CharField(allow_blank=True)
    description = serializers.CharField(allow_blank=True)
    recommendation = serializers.CharField(allow_blank=True)


class SummarySerializer(serializers.Serializer):
    overallRisk = serializers.ChoiceField(choices=RISK_LEVELS)
    keyIssues = serializers.ListField(child=serializers.CharField(allow_blank=True), allow_empty=True)
    recommendation = serializers.CharField(allow_blank=True)


class AnalysisResultSerializer(serializers.Serializer):
    """
    Validates the structured comparison returned by Solar.
    Anything that does not pass is treated like an upstream failure.
    """
    sections = SectionComparisonSerializer(many=True)
    risks = RiskSerializer(many=True)
    summary = SummarySerializer()


class AnalyzeRequestSerializer(serializers.Serializer):
    referenceText = serializers.CharField(trim_whitespace=False)
    customerText = serializers.CharField(trim_whitespace=False)
