"""
Display data derived from an AnalysisResult.

Nothing here affects the analysis itself: match scores and risks come from the
analysis endpoint. The excerpts shown beside each section are picked with a
keyword heuristic and are illustrative only.
"""
import re
from typing import Any, Dict, List, Optional

RISK_WEIGHTS = {
    'low': 25,
    'medium': 60,
    'high': 85,
}

SIMILAR_MATCH_THRESHOLD = 80
PARTIAL_MATCH_THRESHOLD = 50

SECTION_FILTERS = ('all', 'different', 'similar', 'risky')

EXCERPT_MAX_CHARS = 300
EXCERPT_SENTENCES = 2
MIN_SENTENCE_CHARS = 10

# Keyed by a substring of the section title; English and Korean terms.
SECTION_KEYWORDS = {
    'Confidential': ['confidential', 'information', 'proprietary', 'secret', '비밀', '정보'],
    'Definition': ['means', 'defined', 'include', 'definition', '의미', '정의'],
    'Non-Disclosure': ['disclose', 'disclosure', 'share', 'reveal', '공개', '누설'],
    'Obligation': ['obligation', 'duty', 'responsibility', 'shall', '의무', '책임'],
    'Exception': ['exception', 'exclude', 'public', 'known', '예외', '제외'],
    'Term': ['term', 'period', 'duration', 'expire', '기간', '만료'],
    'Return': ['return', 'destroy', 'destruction', '반환', '파기'],
    'Intellectual': ['intellectual', 'property', 'patent', 'trademark', '지적', '재산'],
    'Remedy': ['remedy', 'damages', 'injunction', 'relief', '구제', '손해'],
    'Termination': ['termination', 'terminate', 'end', '종료', '해지'],
    'Governing': ['governing', 'law', 'jurisdiction', 'court', '준거법', '관할'],
}

DEFAULT_ACCEPTABLE_TERM = "Standard confidentiality provisions"
DEFAULT_NEGOTIATION_POINT = {
    'title': "General Review",
    'recommendation': "Review all terms to ensure they align with your business requirements.",
}


def risk_weight(level: Optional[str]) -> int:
    """Fill level for the risk meter. Not a statistical score."""
    return RISK_WEIGHTS.get(level or '', 0)


def count_risks_by_severity(risks: List[Dict[str, Any]]) -> Dict[str, int]:
    counts = {'high': 0, 'medium': 0, 'low': 0}
    for risk in risks:
        severity = risk.get('severity')
        if severity in counts:
            counts[severity] += 1
    return counts


def match_level(match: float) -> str:
    if match >= SIMILAR_MATCH_THRESHOLD:
        return 'high'
    if match >= PARTIAL_MATCH_THRESHOLD:
        return 'medium'
    return 'low'


def _is_risky_section(section: Dict[str, Any], risks: List[Dict[str, Any]]) -> bool:
    title = _strip_numbering(section.get('title', '')).lower()
    if not title:
        return False
    for risk in risks:
        risk_section = _strip_numbering(risk.get('section', '')).lower()
        if risk_section and (risk_section in title or title in risk_section):
            return True
    return False


def _strip_numbering(title: str) -> str:
    return re.sub(r'^\s*\d+(\.\d+)*\.?\s*', '', title or '').strip()


def filter_sections(
    sections: List[Dict[str, Any]],
    mode: str = 'all',
    search: str = '',
    risks: Optional[List[Dict[str, Any]]] = None,
) -> List[Dict[str, Any]]:
    """
    Apply the section filter and the search box.

    Args:
        sections: SectionComparison dicts
        mode: 'all', 'different' (match below 80), 'similar' (80 and above)
            or 'risky' (a risk refers to the section)
        search: case-insensitive text looked up in title and differences
        risks: Risk dicts, used by the 'risky' mode
    """
    if mode not in SECTION_FILTERS:
        raise ValueError(f"Unknown section filter: {mode}")

    risks = risks or []
    needle = (search or '').strip().lower()
    selected = []
    for section in sections:
        match = section.get('match', 0)
        if mode == 'different' and match >= SIMILAR_MATCH_THRESHOLD:
            continue
        if mode == 'similar' and match < SIMILAR_MATCH_THRESHOLD:
            continue
        if mode == 'risky' and not _is_risky_section(section, risks):
            continue
        if needle:
            haystack = f"{section.get('title', '')} {section.get('differences', '')}".lower()
            if needle not in haystack:
                continue
        selected.append(section)
    return selected


def split_sentences(text: str) -> List[str]:
    clean_text = re.sub(r'\s+', ' ', text or '').strip()
    return [s for s in re.split(r'[.!?]+', clean_text) if len(s.strip()) > MIN_SENTENCE_CHARS]


def section_keywords(section_title: str) -> List[str]:
    title = (section_title or '').lower()
    for key, keywords in SECTION_KEYWORDS.items():
        if key.lower() in title:
            return keywords
    return []


def section_excerpt(
    text: str,
    section_title: str,
    sections: List[Dict[str, Any]],
    document_label: str,
) -> str:
    """
    Pick up to two sentences of a document to show next to a section.

    Sentences containing one of the section's keywords win. Without a hit the
    excerpt is the two sentences starting at twice the section's index, so
    different sections show different parts of the document.
    """
    if not text:
        return "Content not available"

    sentences = split_sentences(text)
    if not sentences:
        return "Content not available"

    keywords = section_keywords(section_title)
    relevant = [
        sentence for sentence in sentences
        if any(keyword.lower() in sentence.lower() for keyword in keywords)
    ]

    if relevant:
        chosen = relevant[:EXCERPT_SENTENCES]
    else:
        section_index = next(
            (i for i, section in enumerate(sections) if section.get('title') == section_title),
            -1,
        )
        start = max(0, section_index * EXCERPT_SENTENCES)
        chosen = sentences[start:start + EXCERPT_SENTENCES]

    excerpt = '. '.join(chosen).strip()
    if len(excerpt) > EXCERPT_MAX_CHARS:
        return excerpt[:EXCERPT_MAX_CHARS] + '...'
    return excerpt or f"Section content from {document_label} NDA..."


def _document_text(document: Dict[str, Any]) -> str:
    parsed = document.get('parsedContent') or {}
    return parsed.get('text') or parsed.get('html') or ''


def key_concerns(analysis_result: Dict[str, Any]) -> List[Dict[str, str]]:
    """High risks, then medium risks, then the summary's key issues."""
    risks = analysis_result.get('risks') or []
    summary = analysis_result.get('summary') or {}
    concerns = [{'severity': 'high', 'text': r['title']} for r in risks if r.get('severity') == 'high']
    concerns += [{'severity': 'medium', 'text': r['title']} for r in risks if r.get('severity') == 'medium']
    concerns += [{'severity': 'high', 'text': issue} for issue in summary.get('keyIssues') or []]
    return concerns


def acceptable_terms(analysis_result: Dict[str, Any]) -> List[str]:
    risks = analysis_result.get('risks') or []
    terms = [r['title'] for r in risks if r.get('severity') == 'low']
    return terms or [DEFAULT_ACCEPTABLE_TERM]


def negotiation_points(analysis_result: Dict[str, Any]) -> List[Dict[str, str]]:
    risks = analysis_result.get('risks') or []
    points = [
        {'title': r['title'], 'recommendation': r.get('recommendation', '')}
        for r in risks if r.get('severity') in ('high', 'medium')
    ]
    return points or [dict(DEFAULT_NEGOTIATION_POINT)]


def build_comparison_view(
    analysis_result: Dict[str, Any],
    reference_nda: Dict[str, Any],
    customer_nda: Dict[str, Any],
    search: str = '',
    section_filter: str = 'all',
) -> Dict[str, Any]:
    """Side-by-side tab."""
    sections = analysis_result.get('sections') or []
    risks = analysis_result.get('risks') or []
    reference_text = _document_text(reference_nda)
    customer_text = _document_text(customer_nda)

    rows = []
    for section in filter_sections(sections, section_filter, search, risks):
        title = section.get('title', '')
        rows.append({
            'title': title,
            'match': section.get('match', 0),
            'matchLevel': match_level(section.get('match', 0)),
            'differences': section.get('differences', ''),
            'referenceExcerpt': section_excerpt(reference_text, title, sections, 'reference'),
            'customerExcerpt': section_excerpt(customer_text, title, sections, 'customer'),
        })

    return {
        'referenceFileName': reference_nda.get('fileName', ''),
        'customerFileName': customer_nda.get('fileName', ''),
        'filter': section_filter,
        'search': search,
        'sections': rows,
        'hasSections': bool(sections),
    }


def build_risk_view(analysis_result: Dict[str, Any]) -> Dict[str, Any]:
    """Risk analysis tab."""
    risks = analysis_result.get('risks') or []
    summary = analysis_result.get('summary') or {}
    overall = summary.get('overallRisk')
    return {
        'overallRisk': overall,
        'overallRiskWeight': risk_weight(overall),
        'counts': count_risks_by_severity(risks),
        'totalRisks': len(risks),
        'keyIssues': list(summary.get('keyIssues') or []),
        'risks': [dict(risk, weight=risk_weight(risk.get('severity'))) for risk in risks],
    }


def build_summary_view(analysis_result: Dict[str, Any]) -> Dict[str, Any]:
    """Summary and recommendations tab."""
    summary = analysis_result.get('summary') or {}
    return {
        'overallRisk': summary.get('overallRisk'),
        'recommendation': summary.get('recommendation', ''),
        'keyConcerns': key_concerns(analysis_result),
        'acceptableTerms': acceptable_terms(analysis_result),
        'negotiationPoints': negotiation_points(analysis_result),
    }


def render_analysis(
    analysis_result: Dict[str, Any],
    reference_nda: Dict[str, Any],
    customer_nda: Dict[str, Any],
    search: str = '',
    section_filter: str = 'all',
) -> Dict[str, Any]:
    """All three tabs, plus the fallback marker if the analysis was degraded."""
    return {
        'comparison': build_comparison_view(analysis_result, reference_nda, customer_nda, search, section_filter),
        'risks': build_risk_view(analysis_result),
        'summary': build_summary_view(analysis_result),
        'error': analysis_result.get('error'),
    }
