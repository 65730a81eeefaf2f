"""
Natural-language annotations for analysis results.

Annotators are invoked by callers, never by the analyzer itself. The template
annotator is deterministic and derives everything from the result, so it can
always stand in for an unavailable or failing annotator.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from linkscope.config.logging import get_logger
from linkscope.services.redirect_interfaces import AnalysisResult

logger = get_logger(__name__)

SUPPORTED_LANGUAGES = ("en", "fr")
DEFAULT_LANGUAGE = "en"
TEMPLATE_CONFIDENCE = 85
TEMPLATE_PROCESSING_TIME = 0.1
MULTIPLE_REDIRECTS_THRESHOLD = 2

TEMPLATES: Dict[str, Dict[str, str]] = {
    "en": {
        "summary": "This URL presents a {level} risk level with {redirects} redirects detected.",
        "threats": "Analysis reveals {count} potential threats.",
        "https": "Final destination uses HTTPS.",
        "http": "Warning: Insecure HTTP protocol detected.",
        "complex_chain": "Complex redirect chain may obscure true destination.",
        "rec_https": "Secure HTTPS destination",
        "rec_http": "Avoid insecure HTTP links",
        "rec_multiple": "Be cautious of multiple redirects",
        "rec_simple": "Simple redirect chain",
        "rec_reputation": "Verify destination domain reputation",
        "rec_tools": "Use additional security tools if needed",
    },
    "fr": {
        "summary": "Cette URL présente un niveau de risque {level} avec {redirects} redirections détectées.",
        "threats": "L'analyse révèle {count} menaces potentielles.",
        "https": "La destination finale utilise HTTPS.",
        "http": "Attention : protocole HTTP non sécurisé détecté.",
        "complex_chain": "La chaîne de redirection complexe peut masquer la destination réelle.",
        "rec_https": "Destination sécurisée avec HTTPS",
        "rec_http": "Éviter les liens non sécurisés (HTTP)",
        "rec_multiple": "Méfiez-vous des redirections multiples",
        "rec_simple": "Chaîne de redirection simple",
        "rec_reputation": "Vérifiez la réputation du domaine de destination",
        "rec_tools": "Utilisez des outils de sécurité supplémentaires si nécessaire",
    },
}


@dataclass
class Annotation:
    """Human-readable commentary on one analysis result"""
    summary: str
    risk_assessment: str
    recommendations: List[str] = field(default_factory=list)
    confidence: int = TEMPLATE_CONFIDENCE
    processing_time_seconds: float = TEMPLATE_PROCESSING_TIME

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class IAnnotator(ABC):
    """Interface for annotators (LLM-backed or otherwise)"""

    @abstractmethod
    async def annotate(self, result: AnalysisResult, language: str = DEFAULT_LANGUAGE) -> Annotation:
        pass


def template_annotation(result: AnalysisResult, language: str = DEFAULT_LANGUAGE) -> Annotation:
    """Deterministic annotation built from risk level, redirect count and HTTPS flag."""
    text = TEMPLATES.get(language, TEMPLATES[DEFAULT_LANGUAGE])
    is_https = result.metadata.is_https
    multiple_redirects = result.total_redirect_count > MULTIPLE_REDIRECTS_THRESHOLD

    sentences = [
        text["threats"].format(count=len(result.threats)),
        text["https"] if is_https else text["http"],
    ]
    if multiple_redirects:
        sentences.append(text["complex_chain"])

    return Annotation(
        summary=text["summary"].format(
            level=result.risk_level.value,
            redirects=result.total_redirect_count
        ),
        risk_assessment=" ".join(sentences),
        recommendations=[
            text["rec_https"] if is_https else text["rec_http"],
            text["rec_multiple"] if multiple_redirects else text["rec_simple"],
            text["rec_reputation"],
            text["rec_tools"],
        ],
    )


class TemplateAnnotator(IAnnotator):
    """Default annotator; never fails."""

    async def annotate(self, result: AnalysisResult, language: str = DEFAULT_LANGUAGE) -> Annotation:
        return template_annotation(result, language)


async def annotate_with_fallback(
    annotator: Optional[IAnnotator],
    result: AnalysisResult,
    language: str = DEFAULT_LANGUAGE
) -> Annotation:
    """Annotate with annotator, falling back to the template when it is missing or fails."""
    if annotator is None:
        return template_annotation(result, language)
    try:
        return await annotator.annotate(result, language)
    except Exception as e:
        logger.warning(f"Annotator {type(annotator).__name__} failed, using template: {e}")
        return template_annotation(result, language)
