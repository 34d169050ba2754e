"""
Prompt composition for structured support answers.

The composed prompt always carries the enforcement sections the response
parser depends on; `validate_prompt_structure` checks them before anything
is sent to the completion service.
"""

import json
import logging
from typing import Iterable, List, Sequence

from ..conversation.context import ContextBundle
from ..core.outcome import Err, Ok, Outcome
from ..db.models.chat import Message, TurnSender
from ..db.models.memory import UserMemory

logger = logging.getLogger("supportbot.prompt.builder")

REQUIRED_MARKERS = (
    "SYSTEM ERROR PREVENTION",
    "CRITICAL ENFORCEMENT",
    "MANDATORY STRUCTURE ENFORCEMENT",
    "paragraphs",
    "followUpQuestions",
    "context",
)

SYSTEM_WARNING = """**SYSTEM ERROR PREVENTION:**
- Non-JSON responses will cause a system failure
- Use JSON format ONLY
- This is a CRITICAL SYSTEM REQUIREMENT

**CRITICAL ENFORCEMENT:**
- Respond with a single JSON object wrapped in ```json and ```
- Never answer in plain text or markdown outside the JSON object

**MANDATORY STRUCTURE ENFORCEMENT:**
- The object MUST contain a "paragraphs" array
- Use only the "paragraphs", "followUpQuestions" and "context" keys
- Never use other structures such as "sections", "examples", "request" or "response\""""

INSTRUCTIONS = (
    "Role: you are the support assistant for this service.",
    "Tone: friendly, precise and professional.",
    "Style: clear, structured answers that help the user understand and act.",
    "Language: answer in the language the user wrote in.",
)

MANDATORY_RULES = (
    "Answer in JSON only.",
    "Split the answer into 2-4 paragraphs, each sized for a single chat bubble.",
    "Number paragraphs with an increasing \"id\".",
    "For closing messages (thanks, confirmations, reactions) return an empty followUpQuestions array.",
    "For questions or exploratory messages return 1-3 follow-up questions that fit the conversation.",
    "Summarize the conversation so far in one line as \"context\".",
    "Do not include citation markers such as [1], (1) or numbered references.",
)

OUTPUT_STRUCTURE = {
    "paragraphs": [
        {"id": 1, "content": "First paragraph"},
        {"id": 2, "content": "Second paragraph"},
    ],
    "followUpQuestions": [
        "A follow-up question that fits the conversation",
    ],
    "context": "One-line summary of the conversation",
}


def _format_memories(memories: Sequence[UserMemory]) -> List[str]:
    return [f"- {m.title}: {m.content}" for m in memories]


def _format_turns(turns: Iterable[Message]) -> List[str]:
    lines = []
    for turn in turns:
        speaker = "User" if turn.sender == TurnSender.USER.value else "Assistant"
        lines.append(f"{speaker}: {turn.text}")
    return lines


class PromptComposer:
    """Builds the full prompt for a turn and the shorter retry prompt."""

    def compose(self, user_text: str, bundle: ContextBundle) -> Outcome[str]:
        sections = [
            SYSTEM_WARNING,
            f"**INPUT:**\nQuestion: {user_text}",
        ]
        if bundle.contexts:
            sections.append("**PREVIOUS CONTEXT:**\n" + "\n".join(bundle.contexts))
        if bundle.memories:
            sections.append("**WHAT YOU KNOW ABOUT THIS USER:**\n" + "\n".join(_format_memories(bundle.memories)))
        if bundle.recent_turns:
            sections.append("**RECENT CONVERSATION:**\n" + "\n".join(_format_turns(bundle.recent_turns)))
        sections.append("**INSTRUCTIONS:**\n" + "\n".join(f"- {line}" for line in INSTRUCTIONS))
        sections.append(
            "**MANDATORY RULES:**\n"
            + "\n".join(f"{i}. {rule}" for i, rule in enumerate(MANDATORY_RULES, start=1))
        )
        sections.append(
            "**OUTPUT STRUCTURE:**\n```json\n"
            + json.dumps(OUTPUT_STRUCTURE, indent=2, ensure_ascii=False)
            + "\n```"
        )
        sections.append("**FINAL INSTRUCTION:**\nFollow the structure above exactly and reply with JSON only.")

        return validate_prompt_structure("\n\n".join(sections), user_text)

    @staticmethod
    def retry_prompt(user_text: str) -> str:
        return (
            "Respond ONLY in JSON with the required structure "
            "({\"paragraphs\": [{\"id\", \"content\"}], \"followUpQuestions\": [], \"context\": \"\"}): "
            f"{user_text}"
        )


def validate_prompt_structure(prompt: str, user_text: str) -> Outcome[str]:
    """Ok(prompt) when the prompt is non-empty, carries the user text and every required marker."""
    if not prompt or not prompt.strip():
        return Err("empty_prompt", "composed prompt is empty")
    if user_text not in prompt:
        return Err("missing_user_text", "composed prompt does not contain the user message")
    missing = [marker for marker in REQUIRED_MARKERS if marker not in prompt]
    if missing:
        logger.error(f"Prompt is missing required markers: {missing}")
        return Err("missing_markers", ", ".join(missing))
    return Ok(prompt)
