"""Tests for prompt builders."""

import pytest

from bizfit_api.catalog import find_business_model
from bizfit_api.models import QuizAnswers
from bizfit_api.prompts import (
    build_analysis_prompt,
    build_business_fit_descriptions_prompt,
    build_model_insights_prompt,
    build_personalized_insights_prompt,
    build_results_preview_prompt,
    income_goal_range,
    investment_range,
    rating_description,
    time_commitment_range,
)
from bizfit_api.scoring import score_all


class TestRanges:
    """Tests for answer-to-text helpers."""

    @pytest.mark.parametrize(("rating", "expected"), [(1, "low"), (2, "low"), (3, "moderate"), (4, "high"), (5, "high")])
    def test_rating_description(self, rating, expected):
        assert rating_description(rating) == expected

    def test_income_goal_range(self):
        assert income_goal_range(100) == "Under $500/month"
        assert income_goal_range(10000) == "$10,000+/month"

    def test_investment_range(self):
        assert investment_range(0) == "$0 (no upfront investment)"
        assert investment_range(500) == "$100-$500"
        assert investment_range(50000) == "$5,000+"

    def test_time_commitment_range(self):
        assert time_commitment_range(3) == "Less than 5 hours/week"
        assert time_commitment_range(10) == "5-10 hours/week"
        assert time_commitment_range(40) == "30+ hours/week"


class TestPrompts:
    """Tests for prompt content."""

    def test_analysis_prompt_lists_shortlist_only(self):
        answers = QuizAnswers(tech_skills_rating=5)
        shortlist = score_all(answers)[:2]
        prompt = build_analysis_prompt(answers, shortlist)

        for model, _ in shortlist:
            assert f"- id: {model.id} |" in prompt
        assert "Tech Skills: high" in prompt
        assert "businessAnalysis" in prompt

    def test_ratings_never_raw_numbers(self):
        prompt = build_analysis_prompt(QuizAnswers(risk_comfort_level=2), score_all(QuizAnswers())[:1])
        assert "Risk: low" in prompt

    def test_preview_prompt_sections(self):
        answers = QuizAnswers()
        prompt = build_results_preview_prompt(answers, score_all(answers)[:3])
        for heading in ("### Preview Insights", "### Key Insights", "### Success Predictors"):
            assert heading in prompt

    def test_full_report_prompt_lists_bottom_paths(self):
        answers = QuizAnswers()
        ranked = score_all(answers)
        prompt = build_personalized_insights_prompt(answers, ranked[:3], ranked[-1:])
        assert f"1. {ranked[-1][0].name} ({ranked[-1][1]}%)" in prompt

    def test_full_report_prompt_without_bottom_paths(self):
        answers = QuizAnswers()
        prompt = build_personalized_insights_prompt(answers, score_all(answers)[:3], [])
        assert "1. N/A" in prompt

    def test_model_prompt_fit_type(self):
        prompt = build_model_insights_prompt(QuizAnswers(), "Freelancing", "poor")
        assert '"Freelancing"' in prompt
        assert "misaligned" in prompt
        assert "modelFitReason" in prompt

    def test_descriptions_prompt_keys(self):
        answers = QuizAnswers()
        model = find_business_model("freelancing")
        prompt = build_business_fit_descriptions_prompt(answers, [(model, 80)])
        assert '"freelancing": "Paragraph for Freelancing"' in prompt
        assert "Top Business Match: Freelancing (80% match)" in prompt
