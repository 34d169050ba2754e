"""Canned replies streamed instead of a completion when the screener fires."""

from typing import Dict, List

from .screener import ThreatKind

CANNED_RESPONSES: Dict[ThreatKind, List[str]] = {
    ThreatKind.PROMPT_INJECTION: [
        "I can't change how I work or share my internal instructions, but I'm happy to keep helping with your question.",
        "My guidelines stay the same for every conversation so that everyone gets consistent, safe answers.",
        "If there's something specific you need help with, just ask and I'll do my best.",
    ],
    ThreatKind.SYSTEM_INFO_PROBE: [
        "I don't have access to, and can't share, details about the systems, credentials or configuration behind this service.",
        "If you're running into a technical problem with the service, describe what you're seeing and I'll help you troubleshoot it.",
    ],
    ThreatKind.IDENTITY_PROBE: [
        "I'm the support assistant for this service. Details about the underlying technology aren't something I can go into.",
        "What I can do is help with questions about the product, your account or anything else you're working on.",
    ],
    ThreatKind.SOCIAL_ENGINEERING: [
        "I treat every conversation the same way, so I can't unlock special behaviour based on a role mentioned in chat.",
        "If you need privileged access, please go through the usual account or support channels. Otherwise, I'm glad to help here.",
    ],
}


def canned_paragraphs(kind: ThreatKind) -> List[str]:
    """Paragraphs for `kind`; unknown kinds fall back to the prompt-injection reply."""
    return list(CANNED_RESPONSES.get(kind, CANNED_RESPONSES[ThreatKind.PROMPT_INJECTION]))

CANNED_FOLLOW_UPS: Dict[ThreatKind, List[str]] = {
    ThreatKind.PROMPT_INJECTION: [
        "What would you like help with today?",
        "Do you have a question about your order or account?",
    ],
    ThreatKind.SYSTEM_INFO_PROBE: [
        "Are you seeing an error message you'd like help with?",
        "Which part of the service isn't working as expected?",
    ],
    ThreatKind.IDENTITY_PROBE: [
        "What can I help you with today?",
        "Would you like to know what I can help with?",
    ],
    ThreatKind.SOCIAL_ENGINEERING: [
        "Would you like to know how to reach the account team?",
        "Is there something I can help you with directly?",
    ],
}


def canned_follow_ups(kind: ThreatKind) -> List[str]:
    return list(CANNED_FOLLOW_UPS.get(kind, CANNED_FOLLOW_UPS[ThreatKind.PROMPT_INJECTION]))
