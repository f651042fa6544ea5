"""Prompt builders for fit analysis and narrative insights.

All prompts address the user directly ("you", "your") and describe 1-5
ratings as high/moderate/low so the model never sees raw numbers it could
parrot back.
"""

from collections.abc import Sequence

from bizfit_api.models import FitType, QuizAnswers
from bizfit_api.scoring import ScoredModel

ANALYSIS_SYSTEM_PROMPT = (
    "You are a business consultant. Analyze quiz responses and provide business model "
    "compatibility scores. Return ONLY valid JSON. Address user directly with 'you' and 'your'."
)

COACH_JSON_SYSTEM_PROMPT = (
    "You are an AI business coach. Use JSON output. Use a professional and direct tone. "
    "Do not invent data."
)

COACH_MARKDOWN_SYSTEM_PROMPT = (
    "You are an AI business coach. Write clear markdown using exactly the requested "
    "### headings. Use a professional and direct tone. Do not invent data."
)

YOU_RULE = "Always use \"you\" and \"your\" instead of \"the user\" or \"the user's\"."


def rating_description(rating: int) -> str:
    if rating >= 4:
        return "high"
    if rating >= 3:
        return "moderate"
    return "low"


def income_goal_range(goal: int) -> str:
    if goal < 500:
        return "Under $500/month"
    if goal < 2000:
        return "$500-$2,000/month"
    if goal < 5000:
        return "$2,000-$5,000/month"
    if goal < 10000:
        return "$5,000-$10,000/month"
    return "$10,000+/month"


def investment_range(amount: int) -> str:
    if amount == 0:
        return "$0 (no upfront investment)"
    if amount <= 100:
        return "Under $100"
    if amount <= 500:
        return "$100-$500"
    if amount <= 1000:
        return "$500-$1,000"
    if amount <= 5000:
        return "$1,000-$5,000"
    return "$5,000+"


def time_commitment_range(hours: int) -> str:
    if hours < 5:
        return "Less than 5 hours/week"
    if hours <= 10:
        return "5-10 hours/week"
    if hours <= 20:
        return "10-20 hours/week"
    if hours <= 30:
        return "20-30 hours/week"
    return "30+ hours/week"


def build_user_profile(answers: QuizAnswers, top_match: ScoredModel | None = None) -> str:
    """Condensed profile summary shared by every narrative prompt."""
    lines = ["User Profile Summary:"]
    if top_match is not None:
        model, score = top_match
        lines.append(f"- Top Business Match: {model.name} ({score}% match)")
    lines += [
        f"- Motivation: {answers.main_motivation}",
        f"- First Income Goal: {answers.first_income_timeline}",
        f"- Monthly Income Goal: ${answers.success_income_goal}",
        f"- Upfront Investment: ${answers.upfront_investment}",
        f"- Passion Alignment: {rating_description(answers.passion_identity_alignment)}",
        "",
        "Work Preferences:",
        f"- Time Availability: {answers.weekly_time_commitment} hours/week",
        f"- Learning Style: {answers.learning_preference}",
        f"- Work Structure: {answers.work_structure_preference}",
        f"- Collaboration Style: {answers.work_collaboration_preference}",
        f"- Decision-Making Style: {answers.decision_making_style}",
        "",
        "Personality Traits:",
        f"- Social Comfort: {rating_description(answers.sales_comfort)}",
        f"- Self-Motivation: {rating_description(answers.self_motivation_level)}",
        f"- Risk Tolerance: {rating_description(answers.risk_comfort_level)}",
        f"- Tech Comfort: {rating_description(answers.tech_skills_rating)}",
        f"- Feedback Response: {rating_description(answers.feedback_rejection_response)}",
        f"- Creativity: {rating_description(answers.creative_work_enjoyment)}",
        f"- Brand Comfort: {rating_description(answers.brand_face_comfort)}",
        f"- Competitiveness: {rating_description(answers.competitiveness_level)}",
        f"- Communication: {rating_description(answers.direct_communication_enjoyment)}",
        f"- Organization: {rating_description(answers.organization_level)}",
        f"- Uncertainty Handling: {rating_description(answers.uncertainty_handling)}",
    ]
    return "\n".join(lines)


def build_analysis_prompt(answers: QuizAnswers, shortlist: Sequence[ScoredModel]) -> str:
    """Prompt for the LLM fit analysis over a shortlist of candidate models."""
    models = "\n".join(
        f"- id: {model.id} | {model.name}: {model.description} "
        f"(difficulty {model.difficulty}, time to profit {model.time_to_profit}, "
        f"startup cost {model.startup_cost})"
        for model, _ in shortlist
    )
    return f"""Analyze quiz responses and provide business model compatibility scores:

YOUR PROFILE:
- Motivation: {answers.main_motivation}
- Income Goal: {income_goal_range(answers.success_income_goal)}
- Timeline: {answers.first_income_timeline}
- Budget: {investment_range(answers.upfront_investment)}
- Time: {time_commitment_range(answers.weekly_time_commitment)}
- Tech Skills: {rating_description(answers.tech_skills_rating)}
- Communication: {rating_description(answers.direct_communication_enjoyment)}
- Risk: {rating_description(answers.risk_comfort_level)}
- Self Motivation: {rating_description(answers.self_motivation_level)}
- Creative: {rating_description(answers.creative_work_enjoyment)}
- Work Style: {answers.work_collaboration_preference}
- Learning: {answers.learning_preference}
- Brand Comfort: {rating_description(answers.brand_face_comfort)}
- Organization: {rating_description(answers.organization_level)}
- Consistency: {rating_description(answers.long_term_consistency)}
- Competitiveness: {rating_description(answers.competitiveness_level)}

BUSINESS MODELS TO ANALYZE:
{models}

Return a JSON object with exactly these keys:
- businessAnalysis: one entry per business model above with businessId (the id given above), \
fitScore (0-100), reasoning (string), strengths (array of strings), challenges (array of strings), \
confidence (0-1)
- personalityProfile: strengths (array), developmentAreas (array), workStyle (string), \
riskProfile (string)
- recommendations: array of 3 actionable recommendations

Keep responses concise and focused."""


def build_results_preview_prompt(answers: QuizAnswers, top_paths: Sequence[ScoredModel]) -> str:
    top_model, _ = top_paths[0]
    return f"""Based on your quiz data and your top business model, generate the following:

### Preview Insights
Write 3 paragraphs analyzing why you are a strong fit for {top_model.name}, based on your quiz results.
   - Paragraph 1: Explain why this business model aligns with your goals, constraints, and personality traits.
   - Paragraph 2: Describe your natural advantages in executing this model, referencing specific traits from your quiz.
   - Paragraph 3: Identify one potential challenge you may face based on your profile, and how to overcome it.
   Each paragraph must be at least 3 sentences.

### Key Insights
- 4 bullet points summarizing the most important findings about your business style, risk tolerance, or strategic fit.

### Success Predictors
- 4 bullet points explaining which traits or behaviors from your quiz predict a high chance of success.

CRITICAL RULES:
- Use only the data from your profile.
- Do NOT invent data or use generic filler.
- Every paragraph must reference specific traits from your quiz.
- Max 550 characters per paragraph.
- {YOU_RULE}

YOUR PROFILE:
{build_user_profile(answers, top_paths[0])}"""


def _numbered(paths: Sequence[ScoredModel]) -> str:
    if not paths:
        return "1. N/A"
    return "\n".join(f"{i}. {model.name} ({score}%)" for i, (model, score) in enumerate(paths, 1))


def build_personalized_insights_prompt(
    answers: QuizAnswers,
    top_paths: Sequence[ScoredModel],
    bottom_paths: Sequence[ScoredModel],
) -> str:
    return f"""Based only on your quiz data and the provided top and bottom business matches, \
generate the following. This is for a full business analysis report. Be specific and use only known data.

### Personalized Recommendations
Write 3-4 paragraphs with specific, actionable recommendations for your top business model matches.

### Potential Challenges
Write 2-3 paragraphs identifying potential challenges you may face based on your quiz responses, \
and how to overcome them.

### Top Fit Explanation
Write 2-3 paragraphs explaining why these business models are strong matches for you:
{_numbered(top_paths)}

### Bottom Fit Explanation
Write 2-3 paragraphs explaining why these business models are poor matches for you, and what would \
need to change for them to become viable:
{_numbered(bottom_paths)}

CRITICAL RULES:
- Use ONLY the following data:
{build_user_profile(answers)}
- Do NOT invent numbers, ratings, or filler traits.
- {YOU_RULE}"""


_FIT_INSTRUCTIONS: dict[str, str] = {
    "best": "Explain why this model is the best match for your profile. Focus on specific strengths and advantages.",
    "strong": "Explain why this model is a strong match for your profile, noting areas for growth.",
    "possible": "Explain why this model is a possible match for your profile, noting what would need to improve.",
    "poor": (
        "Clearly explain why this model is misaligned with your profile. "
        "End with a future-oriented line about what would need to change for you."
    ),
}


def build_model_insights_prompt(answers: QuizAnswers, model_name: str, fit_type: FitType) -> str:
    return f"""Generate personalized AI content for the business model "{model_name}" based on your \
quiz data and fit type "{fit_type}".

{_FIT_INSTRUCTIONS[fit_type]}

Return exactly this JSON structure:
{{
  "modelFitReason": "Single paragraph explaining fit"
}}

CRITICAL RULES:
- Use existing profile data only
- Do not generate markdown or code blocks
- Keep modelFitReason a single paragraph
- {YOU_RULE}

YOUR PROFILE:
{build_user_profile(answers)}"""


def build_characteristics_prompt(answers: QuizAnswers) -> str:
    return f"""Based on your quiz responses, identify 6 key personality characteristics that define \
your entrepreneurial style. Return ONLY a JSON object with this exact structure:

{{
  "characteristics": ["characteristic 1", "characteristic 2", "characteristic 3", \
"characteristic 4", "characteristic 5", "characteristic 6"]
}}

Each characteristic should be 2-4 words maximum. Focus on traits that directly relate to business \
success and entrepreneurship.

YOUR PROFILE:
{build_user_profile(answers)}"""


def build_business_fit_descriptions_prompt(
    answers: QuizAnswers, matches: Sequence[ScoredModel]
) -> str:
    models = "\n".join(
        f"{i}. {model.name} (id: {model.id}, {score}% match)"
        for i, (model, score) in enumerate(matches, 1)
    )
    keys = ",\n".join(f'    "{model.id}": "Paragraph for {model.name}"' for model, _ in matches)
    return f"""For each of your top business models below, write a single paragraph explaining why \
this model fits your profile.

Top Business Models:
{models}

Return exactly this JSON structure:
{{
  "businessFitDescriptions": {{
{keys}
  }}
}}

CRITICAL RULES:
- Use only the data from your profile
- Do NOT invent data or use generic filler
- Each description should be 1 focused paragraph
- {YOU_RULE}

YOUR PROFILE:
{build_user_profile(answers, matches[0] if matches else None)}"""
