"""Template narratives used when AI content cannot be generated.

Every template is filled from the user's own answers (motivation, weekly
hours, key ratings, model names) so the fallback still reads as personal.
These are presentation templates and make no attempt to match the wording
of the algorithmic fit analysis.
"""

from collections.abc import Sequence

from bizfit_api.models import (
    BusinessFitDescriptions,
    Characteristics,
    FitType,
    FullReportInsights,
    ModelInsights,
    PreviewInsights,
    QuizAnswers,
)
from bizfit_api.prompts import rating_description
from bizfit_api.scoring import ScoredModel

CHARACTERISTICS_COUNT = 6

_MOTIVATIONS = {
    "financial-freedom": "financial freedom",
    "flexibility": "more flexibility in how you work",
    "passion": "turning your passion into income",
    "impact": "making a meaningful impact",
    "security": "long-term financial security",
}

# (rating field, phrase used when that rating is high)
_TRAIT_PHRASES = (
    ("self_motivation_level", "Highly self-driven"),
    ("organization_level", "Organized planner"),
    ("long_term_consistency", "Consistent long-term executor"),
    ("tech_skills_rating", "Tech-savvy builder"),
    ("creative_work_enjoyment", "Creative problem solver"),
    ("direct_communication_enjoyment", "Confident communicator"),
    ("risk_comfort_level", "Calculated risk taker"),
    ("sales_comfort", "Comfortable selling"),
    ("competitiveness_level", "Competitive achiever"),
    ("discouragement_resilience", "Resilient under setbacks"),
    ("tool_learning_willingness", "Eager tool learner"),
    ("uncertainty_handling", "Steady under uncertainty"),
)

_DEFAULT_CHARACTERISTICS = (
    "Entrepreneurial mindset",
    "Strategic thinking",
    "Risk management",
    "Adaptability",
    "Goal-oriented",
    "Self-motivated",
)


def _motivation(answers: QuizAnswers) -> str:
    return _MOTIVATIONS.get(answers.main_motivation, answers.main_motivation.replace("-", " "))


def _name(paths: Sequence[ScoredModel], index: int, default: str) -> str:
    if len(paths) > index:
        return paths[index][0].name
    return default


def fallback_preview(answers: QuizAnswers, top_paths: Sequence[ScoredModel]) -> PreviewInsights:
    top_name = _name(top_paths, 0, "your top business model")
    tech = rating_description(answers.tech_skills_rating)
    risk = rating_description(answers.risk_comfort_level)
    drive = rating_description(answers.self_motivation_level)

    return PreviewInsights(
        preview_insights=(
            f"Based on your answers, {top_name} is a strong match for your goal of "
            f"{_motivation(answers)}. With about {answers.weekly_time_commitment} hours a week "
            f"and a starting budget of ${answers.upfront_investment}, it fits the time and money "
            f"you said you can commit.\n\n"
            f"Your {drive} self-motivation and {tech} comfort with technology shape how quickly "
            f"you can get {top_name} off the ground. Lean on the strengths your quiz highlighted "
            f"and keep your first steps small and measurable.\n\n"
            f"Your {risk} risk tolerance is worth planning around. Set a clear budget and a "
            f"review point so early results guide your next move."
        ),
        key_insights=[
            f"Your main motivation is {_motivation(answers)}",
            f"You can commit about {answers.weekly_time_commitment} hours per week",
            f"Your risk tolerance is {risk}",
            f"Your technical comfort is {tech}",
        ],
        success_predictors=[
            f"{drive.capitalize()} self-motivation to keep you moving without a boss",
            f"A realistic starting budget of ${answers.upfront_investment}",
            f"{rating_description(answers.long_term_consistency).capitalize()} long-term consistency",
            f"{rating_description(answers.organization_level).capitalize()} organization for managing the work",
        ],
    )


def fallback_full_report(
    answers: QuizAnswers,
    top_paths: Sequence[ScoredModel],
    bottom_paths: Sequence[ScoredModel],
) -> FullReportInsights:
    top_name = _name(top_paths, 0, "your top business model")
    bottom_name = _name(bottom_paths, 0, "your lowest-ranked business model")
    hours = answers.weekly_time_commitment

    challenges = []
    if answers.risk_comfort_level <= 2:
        challenges.append("Your lower risk tolerance may make early, uncertain income feel stressful.")
    if hours <= 10:
        challenges.append(f"With about {hours} hours a week, progress will be steady rather than fast.")
    if answers.tech_skills_rating <= 2:
        challenges.append("Some of the tools involved may take time to learn.")
    if not challenges:
        challenges.append("Income may be inconsistent in the early stages.")
    challenges.append("Success requires consistent weekly action and follow-through.")

    return FullReportInsights(
        personalized_recommendations=(
            f"Focus your {hours} weekly hours on {top_name}. Start with a minimum viable "
            f"version to test demand within your ${answers.upfront_investment} budget, then "
            f"build on what works before scaling up."
        ),
        potential_challenges=" ".join(challenges),
        top_fit_explanation=(
            f"{top_name} aligns with your goal of {_motivation(answers)}, your "
            f"{rating_description(answers.self_motivation_level)} self-motivation and the time "
            f"you can commit each week."
        ),
        bottom_fit_explanation=(
            f"{bottom_name} does not fit your current profile well. Your budget, time and "
            f"{rating_description(answers.risk_comfort_level)} risk tolerance make this path "
            f"harder right now; it could become viable if those constraints change."
        ),
    )


def fallback_model_insights(
    answers: QuizAnswers, model_name: str, fit_type: FitType
) -> ModelInsights:
    hours = answers.weekly_time_commitment
    risk = rating_description(answers.risk_comfort_level)
    tech = rating_description(answers.tech_skills_rating)

    if fit_type == "best":
        reason = (
            f"{model_name} is the best match for your profile. It suits your goal of "
            f"{_motivation(answers)}, your {tech} technical comfort and the {hours} hours a week "
            f"you can invest."
        )
    elif fit_type == "strong":
        reason = (
            f"{model_name} is a strong match for you with room to grow. Your {risk} risk "
            f"tolerance and {hours} weekly hours fit most of what it needs, though some skills "
            f"will need development."
        )
    elif fit_type == "possible":
        reason = (
            f"{model_name} is a possible match. With your {tech} technical comfort and "
            f"{hours} hours a week it could work, but you would need to adjust expectations or "
            f"build specific skills first."
        )
    else:
        reason = (
            f"{model_name} does not align well with your current profile. Your {risk} risk "
            f"tolerance and available time conflict with what it demands. It could become viable "
            f"if your budget, time or skills change."
        )
    return ModelInsights(model_fit_reason=reason)


def fallback_characteristics(answers: QuizAnswers) -> Characteristics:
    """Pick the user's highest-rated traits, padded with general ones."""
    ranked = sorted(
        _TRAIT_PHRASES,
        key=lambda item: answers.rating(item[0]),
        reverse=True,
    )
    traits = [phrase for field_name, phrase in ranked if answers.rating(field_name) >= 4]
    for phrase in _DEFAULT_CHARACTERISTICS:
        if len(traits) >= CHARACTERISTICS_COUNT:
            break
        if phrase not in traits:
            traits.append(phrase)
    return Characteristics(characteristics=traits[:CHARACTERISTICS_COUNT])


def fallback_fit_descriptions(
    answers: QuizAnswers, matches: Sequence[ScoredModel]
) -> BusinessFitDescriptions:
    return BusinessFitDescriptions(
        descriptions={
            model.id: (
                f"{model.name} is a {score}% match for you. It fits your goal of "
                f"{_motivation(answers)} and can work within your {answers.weekly_time_commitment} "
                f"weekly hours and ${answers.upfront_investment} starting budget."
            )
            for model, score in matches
        }
    )
