from __future__ import annotations

from models import Message
from prompt import SYSTEM_INSTRUCTION, assemble


def test_empty_log():
    assert assemble("SYS", []) == "SYS\n\nassistant:"


def test_turns_in_order():
    log = [
        Message(role="user", content="My tomato leaves curl"),
        Message(role="assistant", content="Any white insects under the leaves?"),
        Message(role="user", content="Yes"),
    ]
    assert assemble("SYS", log) == (
        "SYS\n\n"
        "Conversation history:\n"
        "user: My tomato leaves curl\n\n"
        "assistant: Any white insects under the leaves?\n\n"
        "user: Yes\n\n"
        "assistant:"
    )


def test_deterministic():
    log = [Message(role="user", content="hello")]
    assert assemble(SYSTEM_INSTRUCTION, log) == assemble(SYSTEM_INSTRUCTION, list(log))


def test_does_not_truncate():
    log = [Message(role="user", content=f"q{i}") for i in range(50)]
    text = assemble("SYS", log)
    assert "user: q0\n\n" in text
    assert "user: q49\n\n" in text
