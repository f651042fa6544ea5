"""Tests for narrative insight generation."""

import json

import pytest

from bizfit_api.catalog import find_business_model
from bizfit_api.insights_service import (
    InsightsService,
    extract_bullets,
    extract_section,
    fit_type_for_rank,
)
from bizfit_api.models import ContentType, QuizAnswers
from bizfit_api.openai_client import OpenAIError
from bizfit_api.rate_limiter import RateLimiter
from bizfit_api.scoring import UnknownBusinessModelError, score_all

PREVIEW_MARKDOWN = """### Preview Insights
You are a strong fit for Freelancing because your communication skills and steady weekly schedule \
let you take on client work right away.

Your organization keeps projects on track.

### Key Insights
- You prefer working independently
- Your risk tolerance is moderate

### Success Predictors
1. Consistent weekly hours
2. Comfort talking to clients
"""

FULL_REPORT_MARKDOWN = """## Personalized Recommendations
Start by packaging one service you already deliver well and pitch it to three past contacts this week.

## Potential Challenges
Your moderate risk tolerance may make irregular income uncomfortable at first.

## Top Fit Explanation
Freelancing and tutoring both reward the communication skills you rated highly.

## Bottom Fit Explanation
SaaS development needs more runway and technical depth than you currently plan for.
"""


def model_reply(reason: str) -> str:
    return json.dumps({"modelFitReason": reason})


def characteristics_reply(*traits: str) -> str:
    return json.dumps({"characteristics": list(traits)})


@pytest.fixture
def ranked(answers):
    return score_all(answers)


class TestMarkdownParsing:
    """Tests for section and bullet extraction."""

    def test_extract_section(self):
        section = extract_section(PREVIEW_MARKDOWN, "Preview Insights")
        assert section.startswith("You are a strong fit for Freelancing")
        assert "Key Insights" not in section

    def test_extract_section_case_insensitive_with_colon(self):
        content = "## key insights:\n- One\n## Other\n- Two"
        assert extract_section(content, "Key Insights") == "- One"

    def test_extract_last_section(self):
        assert extract_section(PREVIEW_MARKDOWN, "Success Predictors").startswith("1.")

    def test_missing_section(self):
        assert extract_section(PREVIEW_MARKDOWN, "Bottom Fit Explanation") == ""

    def test_extract_bullets(self):
        section = "- dash\n* star\n• dot\n1. numbered\n2) paren\nplain text\n-no space"
        assert extract_bullets(section) == ["dash", "star", "dot", "numbered", "paren"]


class TestFitTypeForRank:
    """Tests for mapping rank and score to a fit type."""

    @pytest.mark.parametrize(
        ("index", "score", "expected"),
        [(0, 20, "best"), (1, 85, "strong"), (1, 70, "strong"), (2, 69, "possible"), (2, 50, "possible"), (3, 49, "poor")],
    )
    def test_fit_types(self, index, score, expected):
        assert fit_type_for_rank(index, score) == expected


class TestRankModels:
    """Tests for choosing the models a narrative covers."""

    def test_default_ranking(self, memory_gate, answers):
        service = InsightsService(memory_gate)
        assert service.rank_models(answers) == score_all(answers)

    def test_explicit_ranking(self, memory_gate, answers):
        service = InsightsService(memory_gate)
        ranked = service.rank_models(answers, ["saas-development", "freelancing"])
        assert [model.id for model, _ in ranked] == ["saas-development", "freelancing"]

    def test_unknown_id(self, memory_gate, answers):
        service = InsightsService(memory_gate)
        with pytest.raises(UnknownBusinessModelError):
            service.rank_models(answers, ["does-not-exist"])


class TestResultsPreview:
    """Tests for the results preview."""

    @pytest.mark.asyncio
    async def test_generated_and_parsed(self, memory_gate, make_llm, answers, ranked):
        llm = make_llm(PREVIEW_MARKDOWN)
        service = InsightsService(memory_gate, llm_client=llm)

        preview = await service.generate_results_preview(answers, ranked[:3], quiz_attempt_id=1)

        assert preview.preview_insights.startswith("You are a strong fit")
        assert preview.key_insights == [
            "You prefer working independently",
            "Your risk tolerance is moderate",
        ]
        assert preview.success_predictors == ["Consistent weekly hours", "Comfort talking to clients"]
        assert llm.calls[0]["json_response"] is False
        assert (await memory_gate.lookup(1, ContentType.PREVIEW))["key_insights"] == preview.key_insights

    @pytest.mark.asyncio
    async def test_second_request_uses_cache(self, memory_gate, make_llm, answers, ranked):
        """Two requests for the same key make one LLM call."""
        llm = make_llm(PREVIEW_MARKDOWN)
        service = InsightsService(memory_gate, llm_client=llm)

        first = await service.generate_results_preview(answers, ranked[:3], quiz_attempt_id=1)
        second = await service.generate_results_preview(answers, ranked[:3], quiz_attempt_id=1)

        assert first == second
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_preview_without_attempt(self, memory_gate, make_llm, answers, ranked):
        """Preview may be generated for an anonymous quiz, but is not stored."""
        llm = make_llm(PREVIEW_MARKDOWN)
        service = InsightsService(memory_gate, llm_client=llm)

        preview = await service.generate_results_preview(answers, ranked[:3])

        assert preview.preview_insights.startswith("You are a strong fit")
        assert memory_gate.cache.get_stats()["entries"] == 0

    @pytest.mark.asyncio
    async def test_short_content_falls_back(self, memory_gate, make_llm, answers, ranked):
        service = InsightsService(memory_gate, llm_client=make_llm("### Preview Insights\nToo short."))
        preview = await service.generate_results_preview(answers, ranked[:3], quiz_attempt_id=1)
        assert ranked[0][0].name in preview.preview_insights
        assert len(preview.key_insights) == 4

    @pytest.mark.asyncio
    async def test_no_client_falls_back_with_personal_details(self, memory_gate, ranked):
        answers = QuizAnswers(weekly_time_commitment=17, main_motivation="flexibility")
        service = InsightsService(memory_gate)

        preview = await service.generate_results_preview(answers, ranked[:3], quiz_attempt_id=2)

        assert "17 hours" in preview.preview_insights
        assert "flexibility" in preview.preview_insights
        assert await memory_gate.lookup(2, ContentType.PREVIEW) is not None


class TestPersonalizedInsights:
    """Tests for the full report narrative."""

    @pytest.mark.asyncio
    async def test_generated(self, memory_gate, make_llm, answers, ranked):
        service = InsightsService(memory_gate, llm_client=make_llm(FULL_REPORT_MARKDOWN))
        report = await service.generate_personalized_insights(
            answers, ranked[:3], ranked[-3:], quiz_attempt_id=3
        )
        assert report.potential_challenges.startswith("Your moderate risk tolerance")
        assert report.bottom_fit_explanation.startswith("SaaS development")

    @pytest.mark.asyncio
    async def test_missing_section_falls_back(self, memory_gate, make_llm, answers, ranked):
        incomplete = FULL_REPORT_MARKDOWN.split("## Bottom Fit Explanation")[0]
        service = InsightsService(memory_gate, llm_client=make_llm(incomplete))

        report = await service.generate_personalized_insights(
            answers, ranked[:3], ranked[-3:], quiz_attempt_id=3
        )

        assert ranked[0][0].name in report.top_fit_explanation

    @pytest.mark.asyncio
    async def test_without_attempt_skips_llm(self, memory_gate, make_llm, answers, ranked):
        """Unattributable content is never generated by the LLM."""
        llm = make_llm(FULL_REPORT_MARKDOWN)
        service = InsightsService(memory_gate, llm_client=llm)

        report = await service.generate_personalized_insights(answers, ranked[:3], ranked[-3:])

        assert llm.calls == []
        assert report.personalized_recommendations

    @pytest.mark.asyncio
    async def test_fallback_is_cached(self, memory_gate, make_llm, answers, ranked):
        llm = make_llm(OpenAIError("provider down"))
        service = InsightsService(memory_gate, llm_client=llm)

        _, first_status = await service._full_report(answers, ranked[:3], ranked[-3:], 4)
        _, second_status = await service._full_report(answers, ranked[:3], ranked[-3:], 4)

        assert (first_status, second_status) == ("fallback", "cached")
        assert len(llm.calls) == 1


class TestModelInsights:
    """Tests for per-model insights."""

    @pytest.mark.asyncio
    async def test_generated(self, memory_gate, make_llm, answers):
        llm = make_llm("```json\n" + model_reply("Your communication skills fit client work.") + "\n```")
        service = InsightsService(memory_gate, llm_client=llm)

        insights = await service.generate_model_insights(answers, "Freelancing", "best", 5)

        assert insights.model_fit_reason == "Your communication skills fit client work."
        assert llm.calls[0]["json_response"] is True
        assert await memory_gate.lookup(5, "model_Freelancing") == {
            "model_fit_reason": "Your communication skills fit client work."
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fit_type", ["best", "strong", "possible", "poor"])
    async def test_fallback_per_fit_type(self, memory_gate, make_llm, answers, fit_type):
        service = InsightsService(memory_gate, llm_client=make_llm('{"somethingElse": 1}'))
        insights = await service.generate_model_insights(answers, "Freelancing", fit_type, 5)
        assert insights.model_fit_reason.startswith("Freelancing")

    @pytest.mark.asyncio
    async def test_rate_limited_falls_back(self, memory_gate, make_llm, answers, fake_clock):
        limiter = RateLimiter(
            max_requests=1, max_history=1, max_wait_seconds=0, clock=fake_clock, sleep=fake_clock.sleep
        )
        await limiter.wait_for_slot()
        llm = make_llm(model_reply("unused"))
        service = InsightsService(memory_gate, llm_client=llm, rate_limiter=limiter)

        insights = await service.generate_model_insights(answers, "Freelancing", "poor", 5)

        assert llm.calls == []
        assert "does not align well" in insights.model_fit_reason


class TestCharacteristics:
    """Tests for entrepreneurial characteristics."""

    @pytest.mark.asyncio
    async def test_trimmed_to_six(self, memory_gate, make_llm, answers):
        reply = characteristics_reply(*(f"Trait {i}" for i in range(8)))
        service = InsightsService(memory_gate, llm_client=make_llm(reply))

        result = await service.generate_characteristics(answers, 6)

        assert result.characteristics == [f"Trait {i}" for i in range(6)]

    @pytest.mark.asyncio
    async def test_fallback_uses_high_ratings(self, memory_gate, driven_answers):
        service = InsightsService(memory_gate)
        result = await service.generate_characteristics(driven_answers, 6)

        assert len(result.characteristics) == 6
        assert "Highly self-driven" in result.characteristics
        assert "Tech-savvy builder" in result.characteristics

    @pytest.mark.asyncio
    async def test_empty_list_falls_back(self, memory_gate, make_llm, answers):
        service = InsightsService(memory_gate, llm_client=make_llm(characteristics_reply()))
        result = await service.generate_characteristics(answers, 6)
        assert len(result.characteristics) == 6


class TestBusinessFitDescriptions:
    """Tests for per-model fit descriptions."""

    @pytest.mark.asyncio
    async def test_missing_models_filled_from_template(self, memory_gate, make_llm, answers, ranked):
        top = ranked[:3]
        first_id = top[0][0].id
        reply = json.dumps({"businessFitDescriptions": {first_id: "Written for you.", "unknown": "x"}})
        service = InsightsService(memory_gate, llm_client=make_llm(reply))

        result = await service.generate_business_fit_descriptions(answers, top, 7)

        assert list(result.descriptions) == [model.id for model, _ in top]
        assert result.descriptions[first_id] == "Written for you."
        second, score = top[1]
        assert result.descriptions[second.id].startswith(f"{second.name} is a {score}% match")

    @pytest.mark.asyncio
    async def test_no_client(self, memory_gate, answers, ranked):
        service = InsightsService(memory_gate)
        result = await service.generate_business_fit_descriptions(answers, ranked[:2], 7)
        assert len(result.descriptions) == 2


class TestGenerateReport:
    """Tests for the full loading sequence."""

    @pytest.mark.asyncio
    async def test_all_generated(self, memory_gate, make_llm, answers, ranked):
        llm = make_llm(
            PREVIEW_MARKDOWN,
            FULL_REPORT_MARKDOWN,
            model_reply("Best fit reason."),
            model_reply("Second fit reason."),
            model_reply("Third fit reason."),
            characteristics_reply("Driven", "Organized", "Curious", "Resilient", "Focused", "Practical"),
        )
        service = InsightsService(memory_gate, llm_client=llm)
        seen = []

        bundle = await service.generate_report(answers, quiz_attempt_id=8, on_step=seen.append)

        top_three = ranked[:3]
        assert [step.key for step in bundle.steps] == [
            "preview",
            "fullReport",
            *(f"model_{model.name}" for model, _ in top_three),
            "characteristics",
        ]
        assert all(step.status == "completed" for step in bundle.steps)
        assert seen == bundle.steps
        assert list(bundle.model_insights) == [model.id for model, _ in top_three]
        assert bundle.model_insights[top_three[0][0].id].model_fit_reason == "Best fit reason."
        assert bundle.characteristics.characteristics[0] == "Driven"
        assert len(llm.calls) == 6

    @pytest.mark.asyncio
    async def test_fallback_then_cached(self, memory_gate, answers):
        service = InsightsService(memory_gate)

        first = await service.generate_report(answers, quiz_attempt_id=9)
        second = await service.generate_report(answers, quiz_attempt_id=9)

        assert {step.status for step in first.steps} == {"fallback"}
        assert {step.status for step in second.steps} == {"cached"}
        assert second.preview == first.preview

    @pytest.mark.asyncio
    async def test_explicit_ranking(self, memory_gate, answers):
        service = InsightsService(memory_gate)
        ranked = service.rank_models(answers, ["saas-development", "freelancing", "online-tutoring"])

        bundle = await service.generate_report(answers, quiz_attempt_id=10, ranked=ranked)

        assert list(bundle.model_insights) == ["saas-development", "freelancing", "online-tutoring"]
        saas = find_business_model("saas-development")
        assert bundle.model_insights[saas.id].model_fit_reason.startswith(saas.name)
