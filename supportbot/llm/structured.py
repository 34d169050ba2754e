"""
Structured answer parsing and the plain-text fallback splitter.

A completion is expected to be JSON shaped as
``{"paragraphs": [{"id", "content"}], "followUpQuestions": [...], "context": "..."}``,
optionally inside a fenced block. When it never is, `split_by_context`
turns the raw text into paragraph-sized chunks.
"""

import json
import re
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as SchemaValidationError

from ..core.outcome import Err, Ok, Outcome

MIN_PLAUSIBLE_LENGTH = 100
MAX_FOLLOW_UPS = 3
SMALL_CHUNK = 300
MERGE_CAP = 1000

GENERIC_FOLLOW_UPS = [
    "Would you like to know more about this topic?",
    "Shall we look at it from another angle?",
    "Would you like a real example?",
]

_JSON_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
_ANY_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*\s*([\s\S]*?)```")

_NUMBERED_BOLD_RE = re.compile(r"^\d+\.\s+\*\*")
_BOLD_HEADER_RE = re.compile(r"^\*\*[^*]+\*\*")
_SECTION_MARKERS = ("**Example:**", "**Conclusion:**", "**Summary:**")


class AnswerParagraph(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: Optional[int] = None
    content: str


class StructuredAnswer(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    paragraphs: Optional[List[AnswerParagraph]] = None
    follow_up_questions: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("followUpQuestions", "follow_up_questions"),
    )
    context: Optional[str] = None

    @field_validator("paragraphs")
    @classmethod
    def _drop_empty_paragraphs(cls, v):
        if v is None:
            return None
        return [p for p in v if p.content and p.content.strip()]

    @field_validator("follow_up_questions", mode="before")
    @classmethod
    def _clean_follow_ups(cls, v):
        if not isinstance(v, list):
            return []
        cleaned = [str(q).strip() for q in v if isinstance(q, str) and q.strip()]
        return cleaned[:MAX_FOLLOW_UPS]

    @field_validator("context", mode="before")
    @classmethod
    def _normalize_context(cls, v):
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    def paragraph_texts(self) -> List[str]:
        return [p.content.strip() for p in (self.paragraphs or [])]


def extract_structured_block(raw: str) -> str:
    """The fenced JSON block if present, else any fenced block, else the trimmed body."""
    text = raw or ""
    match = _JSON_FENCE_RE.search(text) or _ANY_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def looks_truncated(raw: str) -> bool:
    body = (raw or "").strip()
    return body.endswith("...") or len(body) < MIN_PLAUSIBLE_LENGTH


def parse_structured_response(raw: str) -> Outcome[StructuredAnswer]:
    """
    Parse one completion body.

    Err kinds:
        truncated           body ends with an ellipsis or is implausibly short
        unparseable         no JSON object with the expected shape
        missing_paragraphs  valid object without usable paragraphs
    """
    if looks_truncated(raw):
        return Err("truncated", "completion body looks truncated", raw)

    block = extract_structured_block(raw)
    try:
        data = json.loads(block)
    except json.JSONDecodeError as e:
        return Err("unparseable", f"invalid JSON: {e.msg}", raw)
    if not isinstance(data, dict):
        return Err("unparseable", "JSON body is not an object", raw)

    try:
        answer = StructuredAnswer.model_validate(data)
    except SchemaValidationError as e:
        return Err("unparseable", f"unexpected structure: {e.error_count()} errors", raw)

    if not answer.paragraphs:
        return Err("missing_paragraphs", "object has no paragraphs", raw)
    return Ok(answer)


def _starts_new_context(line: str) -> bool:
    if _NUMBERED_BOLD_RE.match(line) or _BOLD_HEADER_RE.match(line):
        return True
    return any(marker in line for marker in _SECTION_MARKERS)


def split_by_context(text: str) -> List[str]:
    """
    Split free text into paragraph-sized chunks at topic boundaries.

    Boundaries are blank lines, numbered bold items, bold headers and the
    Example/Conclusion/Summary markers. Chunks under SMALL_CHUNK characters
    are merged with their neighbours while the merged text stays within
    MERGE_CAP characters.
    """
    chunks: List[str] = []
    current: List[str] = []
    for line in (text or "").split("\n"):
        stripped = line.strip()
        if not stripped:
            if current:
                chunks.append("\n".join(current))
                current = []
            continue
        if current and _starts_new_context(stripped):
            chunks.append("\n".join(current))
            current = []
        current.append(stripped)
    if current:
        chunks.append("\n".join(current))

    merged: List[str] = []
    pending = ""
    for chunk in chunks:
        if len(chunk) >= SMALL_CHUNK:
            if pending:
                merged.append(pending)
                pending = ""
            merged.append(chunk)
            continue
        candidate = f"{pending}\n\n{chunk}" if pending else chunk
        if len(candidate) <= MERGE_CAP:
            pending = candidate
        else:
            merged.append(pending)
            pending = chunk
    if pending:
        merged.append(pending)

    result = [c.strip() for c in merged if c.strip()]
    if not result and (text or "").strip():
        return [text.strip()]
    return result
