"""
Prompt construction.

The system prompt is rebuilt for every request and never persisted: it
carries where the user currently is in the dashboard, which changes between
messages of the same session.
"""

from toolchat.conversation.models import ChatContext

TITLE_PROMPT = (
    "Summarize the following user message into a short, descriptive chat title "
    "(max 4 words). Output ONLY the title text, no quotes or punctuation: {message}"
)


def build_system_prompt(template: str, context: ChatContext) -> str:
    """
    Append a USER CONTEXT section describing what the user is looking at.

    A bound resource wins over a bare namespace; with neither, the template
    is returned unchanged.
    """
    if context.has_target:
        return (
            f"{template}\n\n**USER CONTEXT:**\n"
            f"The user is currently viewing the {context.kind} '{context.name}' "
            f"in namespace '{context.namespace}'.\n"
            "If the user says 'this' or asks context-dependent questions (e.g., 'logs', "
            "'describe', 'yaml'), assume they are referring to this resource."
        )
    if context.namespace:
        return (
            f"{template}\n\n**USER CONTEXT:**\n"
            f"The user is currently in namespace '{context.namespace}'."
        )
    return template


def clean_title(raw: str, max_length: int) -> str:
    """Strip quotes, trailing punctuation and extra lines from a generated title."""
    lines = [line for line in raw.strip().splitlines() if line.strip()]
    title = lines[0] if lines else ""
    title = title.strip().strip("\"'`").rstrip(".!?:;").strip()
    return title[:max_length].rstrip()
