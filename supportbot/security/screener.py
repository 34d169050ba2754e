"""
Adversarial input screening.

A fixed, ordered set of regex matchers grouped by threat kind. The first
kind with any hit wins and reports every pattern id of that kind that
matched. No I/O happens here.
"""

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import List, Pattern, Sequence, Tuple

from ..core.errors import ValidationError

logger = logging.getLogger("supportbot.security.screener")


class ThreatKind(str, enum.Enum):
    NONE = "NONE"
    PROMPT_INJECTION = "PROMPT_INJECTION"
    SYSTEM_INFO_PROBE = "SYSTEM_INFO_PROBE"
    IDENTITY_PROBE = "IDENTITY_PROBE"
    SOCIAL_ENGINEERING = "SOCIAL_ENGINEERING"


class ThreatLevel(str, enum.Enum):
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


_LEVEL_ORDER = [ThreatLevel.LOW, ThreatLevel.MEDIUM, ThreatLevel.HIGH, ThreatLevel.CRITICAL]


@dataclass(frozen=True)
class ScreeningResult:
    kind: ThreatKind = ThreatKind.NONE
    level: ThreatLevel = ThreatLevel.NONE
    matched_patterns: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_threat(self) -> bool:
        return self.kind is not ThreatKind.NONE


CLEAN = ScreeningResult()


def _compile(patterns: Sequence[Tuple[str, str]]) -> List[Tuple[str, Pattern]]:
    return [(pid, re.compile(rx, re.IGNORECASE)) for pid, rx in patterns]


# Evaluation order matters: earlier kinds win when several match.
THREAT_MATCHERS: List[Tuple[ThreatKind, ThreatLevel, List[Tuple[str, Pattern]]]] = [
    (ThreatKind.PROMPT_INJECTION, ThreatLevel.HIGH, _compile([
        ("override.ignore_previous",
         r"\b(ignore|disregard|forget|override)\b.{0,30}\b(all\s+)?(previous|prior|above|earlier|your)\s+"
         r"(instructions?|rules|prompts?|directives?|guidelines)"),
        ("reveal.system_prompt",
         r"\b(reveal|show|print|display|repeat|output|tell me|give me|what is|what's)\b.{0,30}"
         r"\b(system|initial|hidden|original)\s+(prompt|instructions?|message)"),
        ("role.hijack",
         r"\b(you are now|from now on,? you|act as|pretend (to be|you are)|roleplay as)\b.{0,40}"
         r"\b(unrestricted|unfiltered|jailbroken|dan|developer mode|without (any )?(rules|restrictions|limits))"),
        ("jailbreak.keyword", r"\b(jailbreak|dan mode|developer mode enabled|do anything now)\b"),
        ("delimiter.injection", r"(<\|im_start\|>|<\|system\|>|\[/?INST\]|###\s*(system|instruction)\s*:)"),
    ])),
    (ThreatKind.SYSTEM_INFO_PROBE, ThreatLevel.HIGH, _compile([
        ("probe.credentials",
         r"\b(api[\s_-]?keys?|secret[\s_-]?keys?|access tokens?|passwords?|credentials)\b.{0,30}"
         r"\b(you use|of (the|this) (server|system|service)|stored|configured)"),
        ("probe.environment", r"\b(environment variables|env vars|\.env file|config(uration)? file)\b"),
        ("probe.infrastructure",
         r"\b(which|what)\b.{0,20}\b(server|database|db|hosting|cloud provider|framework)\b.{0,20}"
         r"\b(do you|are you|does (this|the) (service|system))\b"),
        ("probe.source_code", r"\b(show|give|send|leak)\b.{0,20}\b(your|the)\s+(source code|codebase|backend code)"),
    ])),
    (ThreatKind.IDENTITY_PROBE, ThreatLevel.MEDIUM, _compile([
        ("identity.model", r"\b(which|what)\s+(ai\s+|language\s+)?(model|llm)\b.{0,20}\b(are you|do you use|powers you|is this)"),
        ("identity.creator", r"\bwho\s+(made|created|built|trained|developed)\s+you\b"),
        ("identity.vendor", r"\bare you\s+(chatgpt|gpt-?\d|gemini|claude|llama|bard|an? openai)\b"),
    ])),
    (ThreatKind.SOCIAL_ENGINEERING, ThreatLevel.LOW, _compile([
        ("claim.privileged",
         r"\bi am (the|your|an?)\s+(developer|admin(istrator)?|owner|creator|engineer)\b"),
        ("claim.authorized", r"\b(i('m| am) authori[sz]ed|this is an? (authorized|official) (test|request))\b"),
    ])),
]


class SecurityScreener:
    """Classify raw turn text against the ordered threat matchers."""

    def __init__(self, matchers=None):
        self.matchers = matchers if matchers is not None else THREAT_MATCHERS

    def screen(self, text: str) -> ScreeningResult:
        if text is None or not str(text).strip():
            raise ValidationError("Message must be a non-empty string")

        for kind, base_level, patterns in self.matchers:
            hits = tuple(pid for pid, rx in patterns if rx.search(text))
            if hits:
                level = self._escalate(base_level, len(hits))
                logger.info(f"Screener matched {kind.value} ({level.value}): {list(hits)}")
                return ScreeningResult(kind=kind, level=level, matched_patterns=hits)
        return CLEAN

    @staticmethod
    def _escalate(level: ThreatLevel, hit_count: int) -> ThreatLevel:
        """Three or more independent hits raise the level one step."""
        if hit_count < 3:
            return level
        index = _LEVEL_ORDER.index(level)
        return _LEVEL_ORDER[min(index + 1, len(_LEVEL_ORDER) - 1)]
