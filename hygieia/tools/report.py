"""Medical report tool — turns a timeframe into a doctor-visit summary.

The report is templated text; the agent fills in the specifics from the
working memory it already sees in its prompt.
"""

from __future__ import annotations

from pydantic import BaseModel
from pydantic_ai import Agent, RunContext

from hygieia.events import make_logger

log = make_logger("hygieia.tools.report")

TYPE_CHECKING = False
if TYPE_CHECKING:
    from hygieia.agent import AgentDeps


class MedicalReport(BaseModel):
    report: str
    treatment_suggestions: str
    preventative_strategies: str


_TREATMENT_SUGGESTIONS = """\
# Discussion Points for Your Doctor

Consider discussing these potential approaches with your healthcare provider:

1. **Medication Adjustments**: Based on tracked effectiveness and side effects
2. **Testing Options**: To rule out or confirm specific underlying causes
3. **Specialist Referrals**: For targeted treatment of complex symptoms
4. **Alternative Therapies**: Evidence-based complementary approaches
5. **Monitoring Strategy**: More precise tracking of specific symptoms or triggers
"""

_PREVENTATIVE_STRATEGIES = """\
# Preventative Strategies to Consider

These lifestyle modifications may help manage symptoms:

1. **Sleep Hygiene**: Consistent sleep schedule and optimized sleep environment
2. **Stress Management**: Techniques like mindfulness, deep breathing, or guided relaxation
3. **Dietary Considerations**: Anti-inflammatory foods and potential trigger avoidance
4. **Physical Activity**: Appropriate and gentle movement based on condition
5. **Environmental Modifications**: Reducing exposure to identified triggers
"""


def generate_medical_report(timeframe: str, condition: str | None = None) -> MedicalReport:
    """Build the report sections for ``timeframe`` (e.g. 'last week', 'all')."""
    log.info("generating medical report  timeframe=%s  condition=%s", timeframe, condition or "-")
    condition_line = f"- Specific changes related to {condition}\n" if condition else ""
    report = (
        "# Medical Symptom Report\n\n"
        "## Symptom Summary\n"
        f"Based on the tracked symptoms over {timeframe}, the following patterns have been observed:\n\n"
        "- Primary symptoms include those recorded in the working memory\n"
        "- Symptom severity has ranged from mild to severe\n"
        "- Duration and frequency of symptoms have been consistent with chronic condition patterns\n"
        "- Key triggers have been identified when possible\n\n"
        "## Observed Patterns\n"
        "The working memory shows connections between symptoms and potential triggers such as:\n"
        "- Stress levels and symptom intensity correlation\n"
        "- Environmental factors that may exacerbate symptoms\n"
        "- Sleep quality impact on symptom presentation\n"
        "- Medication effectiveness and consistency\n\n"
        "## Changes Over Time\n"
        f"The tracked symptoms show evolution over {timeframe} including:\n"
        "- Periods of improvement and regression\n"
        "- Response to lifestyle modifications\n"
        "- Medication effectiveness\n"
        f"{condition_line}"
    )
    return MedicalReport(
        report=report,
        treatment_suggestions=_TREATMENT_SUGGESTIONS,
        preventative_strategies=_PREVENTATIVE_STRATEGIES,
    )


def register(agent: Agent) -> None:
    """Register generate_medical_report on the agent."""
    from hygieia.agent import AgentDeps  # deferred, avoids circular import

    globals()["AgentDeps"] = AgentDeps

    @agent.tool(name="generate_medical_report")
    async def generate_medical_report_tool(
        ctx: RunContext[AgentDeps], timeframe: str, condition: str | None = None
    ) -> MedicalReport:
        """Generate a comprehensive medical report summarizing the user's symptoms,
        patterns, and suggestions for their doctor visit.

        Args:
            timeframe: The timeframe to include (e.g. 'last week', 'last month', 'all').
            condition: Optional specific condition to focus on.
        """
        return generate_medical_report(timeframe, condition)
