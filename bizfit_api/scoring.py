"""Algorithmic business model fit scoring.

Everything in this module is pure: no I/O, no LLM calls. It is the path the
AI scoring service falls back to, so it must produce a score for every
registered business model from any valid set of quiz answers.
"""

import math
from collections.abc import Sequence

from bizfit_api.catalog import get_catalog
from bizfit_api.models import BusinessModelDefinition, QuizAnswers

FACTOR_WEIGHTS: dict[str, float] = {
    "income": 0.20,
    "timeline": 0.15,
    "budget": 0.15,
    "skills": 0.20,
    "personality": 0.15,
    "risk": 0.10,
    "time": 0.05,
}

# Months a user is willing to wait for first income, by quiz answer
TIMELINE_MONTHS: dict[str, float] = {
    "under-1-month": 1,
    "1-3-months": 3,
    "3-6-months": 6,
    "no-rush": 12,
}
DEFAULT_TIMELINE_MONTHS = 6

TRAIT_LABELS: dict[str, str] = {
    "tech_skills_rating": "technical skills",
    "direct_communication_enjoyment": "communication skills",
    "creative_work_enjoyment": "creativity",
    "organization_level": "organization",
    "self_motivation_level": "self-motivation",
    "sales_comfort": "sales confidence",
    "risk_comfort_level": "risk tolerance",
    "brand_face_comfort": "comfort being the face of a brand",
    "tool_learning_willingness": "willingness to learn new tools",
    "digital_content_comfort": "digital content skills",
    "client_calls_comfort": "comfort on client calls",
    "long_term_consistency": "long-term consistency",
    "trial_error_comfort": "comfort with trial and error",
    "competitiveness_level": "competitiveness",
    "feedback_rejection_response": "resilience to rejection",
    "systems_routines_enjoyment": "enjoyment of systems and routines",
    "uncertainty_handling": "handling of uncertainty",
    "social_media_interest": "interest in social media",
    "passive_income_importance": "focus on passive income",
    "promoting_others_openness": "openness to promoting others",
    "meaningful_contribution_importance": "drive to make a meaningful contribution",
    "inventory_comfort": "comfort managing inventory",
    "passion_identity_alignment": "passion for the work",
    "discouragement_resilience": "resilience to discouragement",
    "repetitive_tasks_feeling": "tolerance for repetitive tasks",
    "control_importance": "need for control",
    "online_presence_comfort": "comfort with an online presence",
}

FACTOR_LABELS: dict[str, str] = {
    "income": "income goals",
    "timeline": "timeline expectations",
    "budget": "startup budget",
    "skills": "skills",
    "personality": "personality",
    "risk": "risk tolerance",
    "time": "weekly time availability",
}


# A catalog model paired with its 0-100 fit score
ScoredModel = tuple[BusinessModelDefinition, int]


class UnknownBusinessModelError(KeyError):
    """Raised when a business model id is not in the catalog."""


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(max(value, low), high)


def _trait_label(field_name: str) -> str:
    return TRAIT_LABELS.get(field_name, field_name.replace("_", " "))


# =============================================================================
# Factor sub-scores (each 0..1)
# =============================================================================


def _income_factor(model: BusinessModelDefinition, answers: QuizAnswers) -> float:
    ceiling = model.requirements.max_monthly_income
    goal = answers.success_income_goal
    if goal <= ceiling:
        return 1.0
    return ceiling / goal


def _timeline_factor(model: BusinessModelDefinition, answers: QuizAnswers) -> float:
    patience = TIMELINE_MONTHS.get(answers.first_income_timeline, DEFAULT_TIMELINE_MONTHS)
    needed = model.requirements.months_to_first_income
    if patience >= needed:
        return 1.0
    return patience / needed


def _budget_factor(model: BusinessModelDefinition, answers: QuizAnswers) -> float:
    minimum = model.requirements.min_startup_budget
    if minimum == 0 or answers.upfront_investment >= minimum:
        return 1.0
    return answers.upfront_investment / minimum


def _skills_factor(model: BusinessModelDefinition, answers: QuizAnswers) -> float:
    required = model.requirements.skill_levels
    if not required:
        return 1.0
    scores = []
    for field_name, level in required.items():
        gap = level - answers.rating(field_name)
        scores.append(1.0 if gap <= 0 else 1.0 - gap / 4)
    return sum(scores) / len(scores)


def _personality_factor(model: BusinessModelDefinition, answers: QuizAnswers) -> float:
    targets = model.requirements.personality_targets
    if not targets:
        return 0.5
    scores = [1.0 - abs(answers.rating(name) - target) / 4 for name, target in targets.items()]
    return sum(scores) / len(scores)


def _risk_factor(model: BusinessModelDefinition, answers: QuizAnswers) -> float:
    gap = model.requirements.risk_level - answers.risk_comfort_level
    if gap > 0:
        return 1.0 - gap / 4
    # More tolerance than needed costs a little: the user may find the model too tame
    return 1.0 + gap / 8


def _time_factor(model: BusinessModelDefinition, answers: QuizAnswers) -> float:
    minimum = model.requirements.min_weekly_hours
    if answers.weekly_time_commitment >= minimum:
        return 1.0
    return answers.weekly_time_commitment / minimum


_FACTOR_FUNCTIONS = {
    "income": _income_factor,
    "timeline": _timeline_factor,
    "budget": _budget_factor,
    "skills": _skills_factor,
    "personality": _personality_factor,
    "risk": _risk_factor,
    "time": _time_factor,
}


def calculate_factors(model: BusinessModelDefinition, answers: QuizAnswers) -> dict[str, float]:
    """Compute every weighted factor for a model, each clamped to [0, 1]."""
    return {name: _clamp(func(model, answers)) for name, func in _FACTOR_FUNCTIONS.items()}


def calculate_fit_score(model: BusinessModelDefinition, answers: QuizAnswers) -> int:
    """Weighted fit score for one business model, an integer in [0, 100]."""
    factors = calculate_factors(model, answers)
    score = sum(factors[name] * weight for name, weight in FACTOR_WEIGHTS.items()) * 100
    return int(_clamp(math.floor(score + 0.5), 0, 100))


def score_business_model(
    model_id: str,
    answers: QuizAnswers,
    catalog: Sequence[BusinessModelDefinition] | None = None,
) -> int:
    """Score a business model by catalog id.

    Raises:
        UnknownBusinessModelError: If ``model_id`` is not in the catalog.
    """
    for model in catalog if catalog is not None else get_catalog():
        if model.id == model_id:
            return calculate_fit_score(model, answers)
    raise UnknownBusinessModelError(model_id)


def score_all(
    answers: QuizAnswers,
    catalog: Sequence[BusinessModelDefinition] | None = None,
) -> list[ScoredModel]:
    """Score every catalog model, best first (catalog order breaks ties)."""
    models = catalog if catalog is not None else get_catalog()
    scored = [(model, calculate_fit_score(model, answers)) for model in models]
    return sorted(scored, key=lambda pair: pair[1], reverse=True)


def describe_fit(model: BusinessModelDefinition, answers: QuizAnswers) -> str:
    """One-sentence reasoning naming the strongest and weakest factors."""
    factors = calculate_factors(model, answers)
    strongest = max(factors, key=lambda name: factors[name] * FACTOR_WEIGHTS[name])
    weakest = min(factors, key=lambda name: factors[name])
    if factors[weakest] >= 0.99:
        return (
            f"Algorithmic analysis of {model.name} requirements against your profile: "
            f"your answers meet every requirement, led by your {FACTOR_LABELS[strongest]}."
        )
    return (
        f"Algorithmic analysis of {model.name} requirements against your profile: "
        f"strongest alignment on your {FACTOR_LABELS[strongest]}, "
        f"weakest on your {FACTOR_LABELS[weakest]}."
    )


# =============================================================================
# Rule-based profile synthesis
# =============================================================================


def get_path_strengths(model: BusinessModelDefinition, answers: QuizAnswers) -> list[str]:
    """Strengths the user brings to a specific business model."""
    strengths = []

    if answers.self_motivation_level >= 4:
        strengths.append("High self-motivation")
    if answers.tech_skills_rating >= 4:
        strengths.append("Strong technical skills")
    if answers.direct_communication_enjoyment >= 4:
        strengths.append("Excellent communication abilities")

    for field_name, level in model.requirements.skill_levels.items():
        rating = answers.rating(field_name)
        if rating >= 4 and rating >= level:
            strengths.append(f"Your {_trait_label(field_name)} meet what {model.name} demands")

    if answers.upfront_investment >= model.requirements.min_startup_budget > 0:
        strengths.append("Your budget covers the typical startup costs")

    return list(dict.fromkeys(strengths))


def get_path_challenges(model: BusinessModelDefinition, answers: QuizAnswers) -> list[str]:
    """Challenges the user is likely to face with a specific business model."""
    challenges = []
    requirements = model.requirements

    if answers.risk_comfort_level <= 2 and requirements.risk_level >= 3:
        challenges.append("Low risk tolerance may limit growth")
    if answers.weekly_time_commitment < requirements.min_weekly_hours:
        challenges.append("Limited time availability")
    elif answers.weekly_time_commitment <= 10:
        challenges.append("Limited time availability may slow early progress")
    if answers.upfront_investment < requirements.min_startup_budget:
        challenges.append("Your upfront budget is below the typical startup cost")
    if answers.success_income_goal > requirements.max_monthly_income:
        challenges.append(f"Your income goal is above what {model.name} typically earns")

    patience = TIMELINE_MONTHS.get(answers.first_income_timeline, DEFAULT_TIMELINE_MONTHS)
    if patience < requirements.months_to_first_income:
        challenges.append(f"First income usually takes {model.time_to_profit}, longer than you planned")

    for field_name, level in requirements.skill_levels.items():
        if answers.rating(field_name) < level:
            challenges.append(f"Building your {_trait_label(field_name)} to the level this model needs")

    return challenges


def get_personality_strengths(answers: QuizAnswers) -> list[str]:
    strengths = []

    if answers.self_motivation_level >= 4:
        strengths.append("Self-motivated")
    if answers.organization_level >= 4:
        strengths.append("Well-organized")
    if answers.long_term_consistency >= 4:
        strengths.append("Consistent")
    if answers.tech_skills_rating >= 4:
        strengths.append("Tech-savvy")
    if answers.creative_work_enjoyment >= 4:
        strengths.append("Creative")
    if answers.direct_communication_enjoyment >= 4:
        strengths.append("Strong communicator")
    if answers.risk_comfort_level >= 4:
        strengths.append("Comfortable with risk")

    return strengths


def get_development_areas(answers: QuizAnswers) -> list[str]:
    areas = []

    if answers.risk_comfort_level <= 2:
        areas.append("Risk tolerance")
    if answers.direct_communication_enjoyment <= 2:
        areas.append("Communication confidence")
    if answers.brand_face_comfort <= 2:
        areas.append("Personal branding comfort")
    if answers.organization_level <= 2:
        areas.append("Organization and planning")
    if answers.long_term_consistency <= 2:
        areas.append("Long-term consistency")

    return areas


WORK_STYLES = {
    "solo-only": "Strongly prefers independent work",
    "mostly-solo": "Prefers working alone with minimal collaboration",
    "balanced": "Comfortable with both solo and team work",
    "team-focused": "Thrives in collaborative environments",
}


def get_work_style_description(answers: QuizAnswers) -> str:
    return WORK_STYLES.get(answers.work_collaboration_preference, "Flexible work style")


def get_risk_profile_description(answers: QuizAnswers) -> str:
    if answers.risk_comfort_level >= 4:
        return "High risk tolerance - comfortable with uncertainty"
    if answers.risk_comfort_level >= 3:
        return "Moderate risk tolerance - cautious but willing to take calculated risks"
    return "Low risk tolerance - prefers stable, predictable opportunities"


def get_general_recommendations(answers: QuizAnswers) -> list[str]:
    recommendations = []

    if answers.self_motivation_level >= 4:
        recommendations.append("Focus on business models that reward self-driven individuals")
    if answers.weekly_time_commitment <= 10:
        recommendations.append("Consider part-time or passive income opportunities first")
    if answers.upfront_investment <= 500:
        recommendations.append("Start with low-cost business models to minimize risk")
    if answers.risk_comfort_level <= 2:
        recommendations.append("Favor proven models with predictable early income")
    if answers.tech_skills_rating <= 2:
        recommendations.append("Pick models with beginner-friendly tools and build technical skills gradually")
    if not recommendations:
        recommendations.append("Validate your top match with a small, low-cost experiment before committing")

    return recommendations
