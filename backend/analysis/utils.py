import copy
import logging
from typing import Any, Dict, List

from utils.upstage_client import UpstageAPIError, chat_completion

from .serializers import AnalysisResultSerializer

logger = logging.getLogger(__name__)

SCHEMA_NAME = "nda_analysis"

FALLBACK_ERROR_MESSAGE = "Analysis performed with fallback system due to AI service unavailability"

NDA_ANALYSIS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "sections": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "match": {"type": "number", "minimum": 0, "maximum": 100},
                    "differences": {"type": "string"},
                },
                "required": ["title", "match", "differences"],
            },
        },
        "risks": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "section": {"type": "string"},
                    "severity": {"type": "string", "enum": ["low", "medium", "high"]},
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "recommendation": {"type": "string"},
                },
                "required": ["section", "severity", "title", "description", "recommendation"],
            },
        },
        "summary": {
            "type": "object",
            "properties": {
                "overallRisk": {"type": "string", "enum": ["low", "medium", "high"]},
                "keyIssues": {"type": "array", "items": {"type": "string"}},
                "recommendation": {"type": "string"},
            },
            "required": ["overallRisk", "keyIssues", "recommendation"],
        },
    },
    "required": ["sections", "risks", "summary"],
}

SYSTEM_PROMPT = (
    "You are an expert legal assistant specializing in NDA (Non-Disclosure Agreement) analysis. "
    "You help identify risks, differences, and provide recommendations for contract negotiations. "
    "You must respond with valid JSON following the specified schema."
)

USER_PROMPT_TEMPLATE = """I have two NDAs to compare: a reference NDA and a customer NDA.

Reference NDA:
{reference_text}

Customer NDA:
{customer_text}

Please analyze these NDAs and provide a detailed comparison. Focus on:
1. A section-by-section comparison highlighting differences with match percentages
2. Identification of potential risks in the customer NDA compared to the reference NDA
3. Recommendations on whether to accept, negotiate, or reject specific terms
4. An overall risk assessment (low, medium, high)

Provide your response as a JSON object with the following structure:
- sections: Array of section comparisons with title, match percentage (0-100), and differences
- risks: Array of identified risks with section, severity (low/medium/high), title, description, and recommendation
- summary: Object with overallRisk (low/medium/high), keyIssues array, and overall recommendation

Focus on practical legal analysis and actionable recommendations."""

FALLBACK_ANALYSIS: Dict[str, Any] = {
    "sections": [
        {
            "title": "1. Definitions",
            "match": 90,
            "differences": "Minor wording differences, but substantially the same meaning",
        },
        {
            "title": "2. Confidential Information",
            "match": 75,
            "differences": "Customer NDA requires written authorization for any use",
        },
        {
            "title": "3. Term and Termination",
            "match": 60,
            "differences": "Customer NDA extends term to 5 years with automatic renewal",
        },
    ],
    "risks": [
        {
            "section": "5. Term and Termination",
            "severity": "high",
            "title": "Extended Term Duration",
            "description": "The customer NDA extends the term to 5 years with automatic renewal",
            "recommendation": "Negotiate to reduce term to 3 years and remove automatic renewal",
        },
        {
            "section": "4. Indemnification",
            "severity": "medium",
            "title": "Broad Indemnification Clause",
            "description": "Customer NDA includes broader indemnification requirements",
            "recommendation": "Consider mutual indemnification or limit scope",
        },
    ],
    "summary": {
        "overallRisk": "high",
        "keyIssues": ["Extended term", "Indemnification clause", "Jurisdiction requirements"],
        "recommendation": "Negotiate key terms before signing. Pay special attention to term duration and indemnification clauses.",
    },
}


def build_analysis_messages(reference_text: str, customer_text: str) -> List[Dict[str, str]]:
    """System persona plus the user message carrying both full NDA texts."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": USER_PROMPT_TEMPLATE.format(
                reference_text=reference_text,
                customer_text=customer_text,
            ),
        },
    ]


def build_fallback_analysis() -> Dict[str, Any]:
    """A fresh copy of the fallback result, tagged with the error marker."""
    fallback = copy.deepcopy(FALLBACK_ANALYSIS)
    fallback["error"] = FALLBACK_ERROR_MESSAGE
    return fallback


def analyze_with_solar_llm(reference_text: str, customer_text: str) -> Dict[str, Any]:
    """
    Compare two NDAs with Solar and return the validated AnalysisResult.

    Raises:
        UpstageError: the key is missing, the call failed, or the model output
            is not JSON or does not match the analysis schema.
    """
    messages = build_analysis_messages(reference_text, customer_text)
    raw_result = chat_completion(messages, NDA_ANALYSIS_SCHEMA, SCHEMA_NAME)

    serializer = AnalysisResultSerializer(data=raw_result)
    if not serializer.is_valid():
        logger.error(f"SolarLLM response does not match the analysis schema: {serializer.errors}")
        raise UpstageAPIError("LLM response did not match the analysis schema")

    return serializer.validated_data


def generate_nda_analysis(reference_text: str, customer_text: str) -> Dict[str, Any]:
    """
    Run the analysis, substituting the fallback result on any failure.

    The caller tells the two apart by the presence of the 'error' key.
    """
    try:
        analysis = analyze_with_solar_llm(reference_text, customer_text)
        logger.info(
            f"SolarLLM analysis complete: {len(analysis['sections'])} sections, "
            f"{len(analysis['risks'])} risks, overall risk {analysis['summary']['overallRisk']}"
        )
        return analysis
    except Exception as exc:
        logger.warning(f"Error analyzing with SolarLLM, using fallback analysis: {exc}")
        return build_fallback_analysis()
