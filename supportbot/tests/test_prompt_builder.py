from supportbot.conversation.context import ContextBundle
from supportbot.core.outcome import Err, Ok
from supportbot.db.models.chat import Message
from supportbot.db.models.memory import UserMemory
from supportbot.prompt.builder import REQUIRED_MARKERS, PromptComposer, validate_prompt_structure


def test_compose_includes_every_section():
    bundle = ContextBundle(
        contexts=["Customer ordered a blue jacket"],
        memories=[UserMemory(title="Sizing", content="Prefers size M")],
        recent_turns=[
            Message(sender="user", text="Did my jacket ship?"),
            Message(sender="assistant", text="It left yesterday."),
        ],
    )
    outcome = PromptComposer().compose("Can I still change the size?", bundle)

    assert isinstance(outcome, Ok)
    prompt = outcome.value
    assert "Question: Can I still change the size?" in prompt
    assert "Customer ordered a blue jacket" in prompt
    assert "- Sizing: Prefers size M" in prompt
    assert "User: Did my jacket ship?\nAssistant: It left yesterday." in prompt
    assert all(marker in prompt for marker in REQUIRED_MARKERS)
    assert prompt.index("SYSTEM ERROR PREVENTION") < prompt.index("**INPUT:**") < prompt.index("**OUTPUT STRUCTURE:**")


def test_empty_bundle_omits_optional_sections():
    prompt = PromptComposer().compose("Hello", ContextBundle()).value
    assert "PREVIOUS CONTEXT" not in prompt
    assert "RECENT CONVERSATION" not in prompt


def test_retry_prompt_is_short_and_ends_with_user_text():
    retry = PromptComposer.retry_prompt("Where is my refund?")
    assert retry.startswith("Respond ONLY in JSON with the required structure")
    assert retry.endswith("Where is my refund?")


def test_validation_errors():
    assert validate_prompt_structure("   ", "hi") == Err("empty_prompt", "composed prompt is empty")
    assert validate_prompt_structure("some prompt", "hi there").kind == "missing_user_text"

    missing = validate_prompt_structure("Question: hi, paragraphs and context", "hi")
    assert isinstance(missing, Err)
    assert missing.kind == "missing_markers"
    assert "followUpQuestions" in missing.detail
    assert "paragraphs" not in missing.detail.split(", ")
