import json

from supportbot.core.outcome import Err, Ok
from supportbot.llm.structured import (
    extract_structured_block,
    looks_truncated,
    parse_structured_response,
    split_by_context,
)

from .fakes import structured_reply

LONG = "Your order ships from our central warehouse and usually arrives within three to five business days."


def test_extracts_fenced_json_block():
    raw = "Here you go:\n```json\n{\"a\": 1}\n```\nthanks"
    assert extract_structured_block(raw) == "{\"a\": 1}"


def test_extracts_plain_fence_and_bare_body():
    assert extract_structured_block("```\n{\"a\": 1}\n```") == "{\"a\": 1}"
    assert extract_structured_block("  {\"a\": 1}  ") == "{\"a\": 1}"


def test_parses_structured_answer():
    outcome = parse_structured_response(structured_reply([LONG, "Second paragraph."], ["Track it?"]))
    assert isinstance(outcome, Ok)
    assert outcome.value.paragraph_texts() == [LONG, "Second paragraph."]
    assert outcome.value.follow_up_questions == ["Track it?"]
    assert outcome.value.context == "Customer asked about order delivery times"


def test_snake_case_follow_ups_and_cap():
    body = json.dumps({
        "paragraphs": [{"content": LONG}],
        "follow_up_questions": ["a?", "b?", "c?", "d?"],
    })
    outcome = parse_structured_response(body)
    assert isinstance(outcome, Ok)
    assert outcome.value.follow_up_questions == ["a?", "b?", "c?"]


def test_truncated_and_short_bodies():
    assert looks_truncated("short")
    assert looks_truncated(LONG + " and then...")
    outcome = parse_structured_response(LONG + " and then...")
    assert isinstance(outcome, Err) and outcome.kind == "truncated"


def test_unparseable_body():
    outcome = parse_structured_response(LONG + " " + LONG)
    assert isinstance(outcome, Err)
    assert outcome.kind == "unparseable"
    assert outcome.raw.startswith("Your order")


def test_missing_paragraphs():
    body = json.dumps({"sections": [LONG], "followUpQuestions": [], "context": "x" * 80})
    outcome = parse_structured_response(body)
    assert isinstance(outcome, Err) and outcome.kind == "missing_paragraphs"


def test_split_on_blank_lines_merges_small_chunks():
    text = "First short line.\n\nSecond short line.\n\nThird short line."
    assert split_by_context(text) == ["First short line.\n\nSecond short line.\n\nThird short line."]


def test_split_on_headers_and_markers():
    long_a = "a" * 320
    long_b = "b" * 320
    text = f"**Shipping**\n{long_a}\n**Returns**\n{long_b}\n**Summary:** keep your receipt"
    chunks = split_by_context(text)
    assert chunks == [
        f"**Shipping**\n{long_a}",
        f"**Returns**\n{long_b}",
        "**Summary:** keep your receipt",
    ]


def test_numbered_bold_items_start_new_chunks():
    text = "Intro\n1. **Step one** do this\n2. **Step two** do that"
    assert split_by_context(text) == ["Intro\n\n1. **Step one** do this\n\n2. **Step two** do that"]


def test_merge_respects_cap():
    chunks = ["x" * 290 for _ in range(5)]
    result = split_by_context("\n\n".join(chunks))
    assert all(len(c) <= 1000 for c in result)
    assert sum(c.count("x") for c in result) == 290 * 5
    assert len(result) == 2


def test_split_never_returns_empty_for_text():
    assert split_by_context("   just words   ") == ["just words"]
    assert split_by_context("") == []
