"""Comment bodies posted by the triage workflow.

Source:
- src/repopilot/ai/models.py (TriageResult)
"""

from src.repopilot.ai.models import TriageResult


TRIAGE_SIGNATURE = "*Determined by RepoPilot Triage AI*"

NEEDS_INFO_LABEL = "needs-more-info"


def format_triage_comment(author: str, triage: TriageResult) -> str:
    """Format the clarifying question posted on an issue that needs more info.

    The issue author is mentioned so they are notified.

    Example:
        >>> print(format_triage_comment("octocat", TriageResult(needs_info=True, question="Which version?")))
        Hi @octocat, thanks for opening this issue! 
        <BLANKLINE>
        Which version?
        <BLANKLINE>
        *Determined by RepoPilot Triage AI*
    """
    return f"Hi @{author}, thanks for opening this issue! \n\n{triage.question}\n\n{TRIAGE_SIGNATURE}"


def format_acknowledgement_comment(label_name: str = NEEDS_INFO_LABEL) -> str:
    """Comment posted when the author has answered and the label was removed."""
    return (
        f"Thanks for the update! I've removed the '{label_name}' label. "
        "The team will review this shortly."
    )
