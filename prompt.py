# prompt.py
from typing import Iterable

from models import Message

SYSTEM_INSTRUCTION = (
    "You are an agricultural advisor for smallholder farmers in India.\n"
    "Always reply in the same language as the farmer's input.\n"
    "Give simple, step-by-step, low-cost solutions.\n"
    "Keep answers short and practical.\n"
    "If more details are needed (crop type, soil, pest symptoms), ask one simple follow-up question.\n"
    "If the farmer uploads photos/audio/video, include them in your reasoning."
)

HISTORY_LABEL = "Conversation history:"
ASSISTANT_CUE = "assistant:"
TURN_SEPARATOR = "\n\n"


def render_turn(message: Message) -> str:
    return f"{message.role}: {message.content}"


def assemble(system_instruction: str, log: Iterable[Message]) -> str:
    """Build the text prompt sent to the model.

    The log must already be pruned; nothing is truncated here.
    """
    history = TURN_SEPARATOR.join(render_turn(m) for m in log)
    if not history:
        return f"{system_instruction}{TURN_SEPARATOR}{ASSISTANT_CUE}"
    return (
        f"{system_instruction}{TURN_SEPARATOR}"
        f"{HISTORY_LABEL}\n{history}{TURN_SEPARATOR}"
        f"{ASSISTANT_CUE}"
    )
