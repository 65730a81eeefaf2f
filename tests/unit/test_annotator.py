"""
Unit tests for the template annotator and the fallback helper.
"""

from unittest.mock import AsyncMock

import pytest

from linkscope.services.annotator import (
    Annotation, IAnnotator, TemplateAnnotator, annotate_with_fallback, template_annotation
)


class TestTemplateAnnotation:

    def test_secure_english(self, secure_result):
        annotation = template_annotation(secure_result, "en")

        assert annotation.summary == "This URL presents a secure risk level with 0 redirects detected."
        assert annotation.risk_assessment == "Analysis reveals 0 potential threats. Final destination uses HTTPS."
        assert annotation.recommendations == [
            "Secure HTTPS destination",
            "Simple redirect chain",
            "Verify destination domain reputation",
            "Use additional security tools if needed",
        ]
        assert annotation.confidence == 85
        assert annotation.processing_time_seconds == 0.1

    def test_risky_french(self, risky_result):
        annotation = template_annotation(risky_result, "fr")

        assert annotation.summary == (
            "Cette URL présente un niveau de risque critical avec 3 redirections détectées."
        )
        assert annotation.risk_assessment == (
            "L'analyse révèle 4 menaces potentielles. "
            "Attention : protocole HTTP non sécurisé détecté. "
            "La chaîne de redirection complexe peut masquer la destination réelle."
        )
        assert annotation.recommendations[:2] == [
            "Éviter les liens non sécurisés (HTTP)",
            "Méfiez-vous des redirections multiples",
        ]

    def test_unsupported_language_uses_english(self, secure_result):
        assert template_annotation(secure_result, "de") == template_annotation(secure_result, "en")

    def test_deterministic(self, risky_result):
        assert template_annotation(risky_result) == template_annotation(risky_result)

    def test_to_dict(self, secure_result):
        data = template_annotation(secure_result).to_dict()

        assert set(data) == {
            "summary", "risk_assessment", "recommendations", "confidence", "processing_time_seconds"
        }


class TestAnnotateWithFallback:

    @pytest.mark.asyncio
    async def test_missing_annotator_uses_template(self, secure_result):
        annotation = await annotate_with_fallback(None, secure_result, "en")

        assert annotation == template_annotation(secure_result, "en")

    @pytest.mark.asyncio
    async def test_failing_annotator_uses_template(self, risky_result):
        annotator = AsyncMock(spec=IAnnotator)
        annotator.annotate.side_effect = RuntimeError("quota exceeded")

        annotation = await annotate_with_fallback(annotator, risky_result, "fr")

        assert annotation == template_annotation(risky_result, "fr")
        annotator.annotate.assert_awaited_once_with(risky_result, "fr")

    @pytest.mark.asyncio
    async def test_working_annotator_is_used(self, secure_result):
        custom = Annotation(summary="ok", risk_assessment="fine", recommendations=["none"], confidence=99)
        annotator = AsyncMock(spec=IAnnotator)
        annotator.annotate.return_value = custom

        assert await annotate_with_fallback(annotator, secure_result) is custom

    @pytest.mark.asyncio
    async def test_template_annotator(self, secure_result):
        annotation = await TemplateAnnotator().annotate(secure_result, "fr")

        assert annotation.summary.startswith("Cette URL présente un niveau de risque secure")
