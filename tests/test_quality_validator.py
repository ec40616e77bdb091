"""
Tests for QualityValidator heuristics
"""

import pytest

from app.services.quality_validator import QualityValidator


@pytest.fixture
def validator():
    return QualityValidator(threshold=0.5)


class TestValidate:

    @pytest.mark.parametrize("text", [
        "How long does standard shipping take?",
        "Can I change my delivery address after ordering?",
        "Is there a student discount?",
    ])
    def test_real_questions_pass(self, validator, text):
        result = validator.validate(text)

        assert result.is_valid is True
        assert result.score >= 0.5

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_is_invalid(self, validator, text):
        result = validator.validate(text)

        assert result.is_valid is False
        assert result.score == 0.0

    def test_single_word_is_invalid(self, validator):
        result = validator.validate("Why?")

        assert result.is_valid is False
        assert result.score <= 0.2
        assert "single_token" in result.reasons

    def test_greeting_is_invalid(self, validator):
        result = validator.validate("Hi, thanks, regards")

        assert result.is_valid is False
        assert "boilerplate_only" in result.reasons

    def test_overlong_text_is_penalized(self, validator):
        text = "Could you explain " + " ".join(["everything"] * 80)

        result = validator.validate(text)

        assert "too_long" in result.reasons
        assert result.is_valid is False

    def test_request_phrasing_without_question_mark(self, validator):
        result = validator.validate("I would like to know the warranty period for laptops")

        assert "request_phrasing" in result.reasons
        assert result.is_valid is True

    def test_score_is_bounded(self, validator):
        result = validator.validate("What are your opening hours on public holidays?")

        assert 0.0 <= result.score <= 1.0

    def test_threshold_is_configurable(self):
        strict = QualityValidator(threshold=0.95)

        assert strict.validate("Is there a student discount?").is_valid is False


def test_reference_scores(validator):
    assert validator.validate("help").score < 0.5
    assert validator.validate("How do I reset my password for my account?").score > 0.7
