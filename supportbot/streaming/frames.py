"""
Wire frames for incremental answer delivery.

Each frame is one line of the form ``DATA: <json>`` followed by a blank line.
"""

import json
from typing import Any, Dict, List

from ..db.models.chat import Message

FRAME_PREFIX = "DATA: "

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}
STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


class FrameType:
    STREAMING = "streaming"
    PARAGRAPH = "paragraph"
    FOLLOW_UP = "followUp"
    ERROR = "error"
    COMPLETE = "complete"
    REFRESH = "refresh"


def encode_frame(frame: Dict[str, Any]) -> str:
    return f"{FRAME_PREFIX}{json.dumps(frame, ensure_ascii=False)}\n\n"


def decode_frames(body: str) -> List[Dict[str, Any]]:
    """Parse a concatenated frame stream back into dicts."""
    frames = []
    for block in body.split("\n\n"):
        block = block.strip()
        if block.startswith(FRAME_PREFIX):
            frames.append(json.loads(block[len(FRAME_PREFIX):]))
    return frames


def streaming_frame(turn: Message, prefix: str, paragraph_index: int, total_paragraphs: int,
                    word_index: int, total_words: int) -> Dict[str, Any]:
    return {
        "type": FrameType.STREAMING,
        "message": {**turn.to_dict(), "text": prefix, "isStreaming": True},
        "paragraphIndex": paragraph_index,
        "totalParagraphs": total_paragraphs,
        "wordIndex": word_index,
        "totalWords": total_words,
    }


def paragraph_frame(turn: Message, paragraph_index: int, total_paragraphs: int) -> Dict[str, Any]:
    return {
        "type": FrameType.PARAGRAPH,
        "message": {**turn.to_dict(), "isStreaming": False},
        "paragraphIndex": paragraph_index,
        "totalParagraphs": total_paragraphs,
    }


def follow_up_frame(turn: Message) -> Dict[str, Any]:
    return {"type": FrameType.FOLLOW_UP, "message": turn.to_dict()}


def complete_frame(follow_up_questions: List[str]) -> Dict[str, Any]:
    return {"type": FrameType.COMPLETE, "followUpQuestions": list(follow_up_questions)}


def refresh_frame() -> Dict[str, Any]:
    return {"type": FrameType.REFRESH}


def error_frame(turn: Message, follow_up_questions: List[str]) -> Dict[str, Any]:
    return {
        "type": FrameType.ERROR,
        "message": turn.to_dict(),
        "followUpQuestions": list(follow_up_questions),
    }
