"""Static business model catalog.

Loaded once at import time and treated as read-only reference data. The
``requirements`` of each entry are the bands the algorithmic calculator in
``bizfit_api.scoring`` compares quiz answers against.
"""

from functools import lru_cache

from bizfit_api.models import BusinessModelDefinition, ModelRequirements

BUSINESS_MODELS: tuple[BusinessModelDefinition, ...] = (
    BusinessModelDefinition(
        id="affiliate-marketing",
        name="Affiliate Marketing",
        description="Promote other companies' products and earn a commission on every sale you refer.",
        difficulty="Medium",
        time_to_profit="3-6 months",
        startup_cost="$0-$500",
        potential_income="$500-$10,000+/month",
        skills=["Content creation", "SEO", "Audience building", "Copywriting"],
        best_fit_personality=["Self-motivated", "Patient", "Consistent", "Comfortable with uncertainty"],
        requirements=ModelRequirements(
            min_monthly_income=500,
            max_monthly_income=10000,
            months_to_first_income=4,
            min_startup_budget=0,
            min_weekly_hours=10,
            risk_level=2,
            skill_levels={"tech_skills_rating": 3, "creative_work_enjoyment": 3},
            personality_targets={
                "self_motivation_level": 5,
                "long_term_consistency": 4,
                "promoting_others_openness": 4,
            },
        ),
    ),
    BusinessModelDefinition(
        id="content-creation-ugc",
        name="Content Creation / UGC",
        description="Create videos and posts for your own channels or as user-generated content for brands.",
        difficulty="Medium",
        time_to_profit="3-9 months",
        startup_cost="$0-$1,000",
        potential_income="$500-$20,000+/month",
        skills=["Video production", "Storytelling", "Social media", "On-camera presence"],
        best_fit_personality=["Creative", "Comfortable on camera", "Consistent", "Trend-aware"],
        requirements=ModelRequirements(
            min_monthly_income=500,
            max_monthly_income=20000,
            months_to_first_income=6,
            min_startup_budget=0,
            min_weekly_hours=10,
            risk_level=3,
            skill_levels={"creative_work_enjoyment": 4, "digital_content_comfort": 3},
            personality_targets={
                "brand_face_comfort": 5,
                "social_media_interest": 5,
                "long_term_consistency": 4,
            },
        ),
    ),
    BusinessModelDefinition(
        id="freelancing",
        name="Freelancing",
        description="Sell a skill you already have, such as design, writing or development, to clients by the project.",
        difficulty="Easy",
        time_to_profit="Under 1 month",
        startup_cost="$0-$200",
        potential_income="$1,000-$15,000/month",
        skills=["A marketable skill", "Client communication", "Time management"],
        best_fit_personality=["Reliable", "Communicative", "Organized", "Skilled"],
        requirements=ModelRequirements(
            min_monthly_income=1000,
            max_monthly_income=15000,
            months_to_first_income=1,
            min_startup_budget=0,
            min_weekly_hours=10,
            risk_level=1,
            skill_levels={"direct_communication_enjoyment": 3, "tool_learning_willingness": 3},
            personality_targets={
                "organization_level": 4,
                "client_calls_comfort": 4,
                "feedback_rejection_response": 4,
            },
        ),
    ),
    BusinessModelDefinition(
        id="e-commerce-dropshipping",
        name="E-commerce Dropshipping",
        description="Run an online store that forwards orders to suppliers who ship directly to your customers.",
        difficulty="Medium",
        time_to_profit="2-6 months",
        startup_cost="$500-$3,000",
        potential_income="$1,000-$30,000+/month",
        skills=["Paid advertising", "Product research", "Store setup", "Customer service"],
        best_fit_personality=["Analytical", "Risk-tolerant", "Data-driven", "Persistent"],
        requirements=ModelRequirements(
            min_monthly_income=1000,
            max_monthly_income=30000,
            months_to_first_income=3,
            min_startup_budget=500,
            min_weekly_hours=15,
            risk_level=4,
            skill_levels={"tech_skills_rating": 3, "tool_learning_willingness": 4},
            personality_targets={
                "risk_comfort_level": 4,
                "trial_error_comfort": 5,
                "competitiveness_level": 4,
            },
        ),
    ),
    BusinessModelDefinition(
        id="virtual-assistant",
        name="Virtual Assistant",
        description="Provide remote administrative, scheduling and operations support to busy professionals.",
        difficulty="Easy",
        time_to_profit="Under 1 month",
        startup_cost="$0-$100",
        potential_income="$800-$5,000/month",
        skills=["Organization", "Communication", "Common business software"],
        best_fit_personality=["Organized", "Detail-oriented", "Dependable", "Service-minded"],
        requirements=ModelRequirements(
            min_monthly_income=800,
            max_monthly_income=5000,
            months_to_first_income=1,
            min_startup_budget=0,
            min_weekly_hours=10,
            risk_level=1,
            skill_levels={"organization_level": 4, "tech_skills_rating": 2},
            personality_targets={
                "systems_routines_enjoyment": 4,
                "repetitive_tasks_feeling": 4,
                "control_importance": 2,
            },
        ),
    ),
    BusinessModelDefinition(
        id="online-coaching-consulting",
        name="Online Coaching & Consulting",
        description="Package your expertise into one-on-one or group programs that help clients reach a result.",
        difficulty="Medium",
        time_to_profit="1-3 months",
        startup_cost="$0-$1,000",
        potential_income="$2,000-$25,000+/month",
        skills=["Subject expertise", "Sales conversations", "Program design", "Personal branding"],
        best_fit_personality=["Empathetic", "Confident", "Great communicator", "Expert"],
        requirements=ModelRequirements(
            min_monthly_income=2000,
            max_monthly_income=25000,
            months_to_first_income=2,
            min_startup_budget=0,
            min_weekly_hours=10,
            risk_level=2,
            skill_levels={"direct_communication_enjoyment": 4, "sales_comfort": 3},
            personality_targets={
                "brand_face_comfort": 4,
                "client_calls_comfort": 5,
                "meaningful_contribution_importance": 4,
            },
        ),
    ),
    BusinessModelDefinition(
        id="print-on-demand",
        name="Print on Demand",
        description="Sell your designs on shirts, mugs and posters that are printed and shipped only when ordered.",
        difficulty="Easy",
        time_to_profit="3-6 months",
        startup_cost="$0-$300",
        potential_income="$200-$5,000/month",
        skills=["Graphic design", "Niche research", "Marketplace SEO"],
        best_fit_personality=["Creative", "Patient", "Trend-aware", "Independent"],
        requirements=ModelRequirements(
            min_monthly_income=200,
            max_monthly_income=5000,
            months_to_first_income=4,
            min_startup_budget=0,
            min_weekly_hours=5,
            risk_level=2,
            skill_levels={"creative_work_enjoyment": 4, "tech_skills_rating": 2},
            personality_targets={
                "passive_income_importance": 4,
                "trial_error_comfort": 4,
                "brand_face_comfort": 2,
            },
        ),
    ),
    BusinessModelDefinition(
        id="saas-development",
        name="SaaS Development",
        description="Build and sell subscription software that solves a specific problem for a niche audience.",
        difficulty="Hard",
        time_to_profit="6-18 months",
        startup_cost="$500-$10,000",
        potential_income="$2,000-$100,000+/month",
        skills=["Software development", "Product thinking", "Customer research", "Marketing"],
        best_fit_personality=["Technical", "Risk-tolerant", "Persistent", "Visionary"],
        requirements=ModelRequirements(
            min_monthly_income=2000,
            max_monthly_income=100000,
            months_to_first_income=6,
            min_startup_budget=500,
            min_weekly_hours=15,
            risk_level=5,
            skill_levels={"tech_skills_rating": 5, "tool_learning_willingness": 4},
            personality_targets={
                "risk_comfort_level": 5,
                "self_motivation_level": 5,
                "uncertainty_handling": 4,
            },
        ),
    ),
    BusinessModelDefinition(
        id="youtube-automation",
        name="YouTube Automation",
        description="Run faceless YouTube channels with outsourced scripts, voiceovers and editing.",
        difficulty="Medium",
        time_to_profit="6-12 months",
        startup_cost="$500-$5,000",
        potential_income="$500-$20,000+/month",
        skills=["Niche research", "Team management", "YouTube analytics"],
        best_fit_personality=["Systematic", "Patient", "Investment-minded", "Manager"],
        requirements=ModelRequirements(
            min_monthly_income=500,
            max_monthly_income=20000,
            months_to_first_income=8,
            min_startup_budget=500,
            min_weekly_hours=10,
            risk_level=4,
            skill_levels={"organization_level": 3, "digital_content_comfort": 3},
            personality_targets={
                "systems_routines_enjoyment": 4,
                "passive_income_importance": 5,
                "brand_face_comfort": 1,
            },
        ),
    ),
    BusinessModelDefinition(
        id="local-service-business",
        name="Local Service Business",
        description="Offer a hands-on service such as cleaning, landscaping or handyman work in your area.",
        difficulty="Medium",
        time_to_profit="1-3 months",
        startup_cost="$500-$5,000",
        potential_income="$2,000-$20,000/month",
        skills=["Trade skill", "Local marketing", "Scheduling", "Customer service"],
        best_fit_personality=["Hands-on", "Reliable", "Personable", "Organized"],
        requirements=ModelRequirements(
            min_monthly_income=2000,
            max_monthly_income=20000,
            months_to_first_income=2,
            min_startup_budget=500,
            min_weekly_hours=20,
            risk_level=2,
            skill_levels={"direct_communication_enjoyment": 3, "organization_level": 3},
            personality_targets={
                "client_calls_comfort": 4,
                "systems_routines_enjoyment": 4,
                "online_presence_comfort": 2,
            },
        ),
    ),
    BusinessModelDefinition(
        id="high-ticket-sales",
        name="High-Ticket Sales",
        description="Close premium offers for other businesses on commission, usually over video calls.",
        difficulty="Medium",
        time_to_profit="1-3 months",
        startup_cost="$0-$1,000",
        potential_income="$3,000-$30,000/month",
        skills=["Sales", "Objection handling", "Active listening"],
        best_fit_personality=["Competitive", "Resilient", "Persuasive", "Outgoing"],
        requirements=ModelRequirements(
            min_monthly_income=3000,
            max_monthly_income=30000,
            months_to_first_income=2,
            min_startup_budget=0,
            min_weekly_hours=20,
            risk_level=3,
            skill_levels={"sales_comfort": 5, "direct_communication_enjoyment": 5},
            personality_targets={
                "competitiveness_level": 5,
                "feedback_rejection_response": 5,
                "discouragement_resilience": 4,
            },
        ),
    ),
    BusinessModelDefinition(
        id="online-tutoring",
        name="Online Tutoring",
        description="Teach students one-on-one or in small groups over video in a subject you know well.",
        difficulty="Easy",
        time_to_profit="Under 1 month",
        startup_cost="$0-$200",
        potential_income="$500-$6,000/month",
        skills=["Subject knowledge", "Patience", "Explaining concepts"],
        best_fit_personality=["Patient", "Helpful", "Clear communicator", "Structured"],
        requirements=ModelRequirements(
            min_monthly_income=500,
            max_monthly_income=6000,
            months_to_first_income=1,
            min_startup_budget=0,
            min_weekly_hours=5,
            risk_level=1,
            skill_levels={"direct_communication_enjoyment": 4, "tech_skills_rating": 2},
            personality_targets={
                "meaningful_contribution_importance": 5,
                "client_calls_comfort": 4,
                "risk_comfort_level": 2,
            },
        ),
    ),
)


@lru_cache
def _catalog_index() -> dict[str, BusinessModelDefinition]:
    index = {model.id: model for model in BUSINESS_MODELS}
    if len(index) != len(BUSINESS_MODELS):
        raise ValueError("Duplicate business model id in catalog")
    return index


def get_catalog() -> tuple[BusinessModelDefinition, ...]:
    """Return the full business model catalog."""
    return BUSINESS_MODELS


def find_business_model(model_id: str) -> BusinessModelDefinition | None:
    """Look up a catalog entry by id, or None if unknown."""
    return _catalog_index().get(model_id)


def find_business_model_by_name(name: str) -> BusinessModelDefinition | None:
    """Look up a catalog entry by display name (case-insensitive)."""
    wanted = name.strip().lower()
    for model in BUSINESS_MODELS:
        if model.name.lower() == wanted:
            return model
    return None
