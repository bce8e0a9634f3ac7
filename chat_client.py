# chat_client.py
"""
Client side of the farmer chat: holds the active conversation, stages
attachments, talks to the chat server and flushes finished conversations
into the local history file.

Run ``python chat_client.py`` for a terminal front-end.
"""
import argparse
import logging
import mimetypes
import os
import random
import string
import threading
import time
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import httpx

from history_store import LocalHistoryStore
from logging_config import setup_logging
from models import Attachment, ConversationRecord, Message

logger = logging.getLogger("farmer_chat.client")

MAX_STAGED_FILES = 5
SAVE_DELAY = 2.0
FALLBACK_REPLY = (
    "माफ करें, कुछ तकनीकी समस्या हुई है। कृपया दोबारा कोशिश करें। / "
    "Sorry, there was a technical issue. Please try again."
)
NEW_CHAT_PROMPT = "शुरू नई बातचीत? / Start new conversation? This will save current chat to history."
CLEAR_HISTORY_PROMPT = "सभी चैट इतिहास साफ़ करें? / Clear all chat history? This cannot be undone."
LANGUAGES = ("auto", "en", "hi", "ta", "bn", "kn", "ml", "te", "gu", "mr", "pa")


def generate_session_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


@dataclass
class StagedFile:
    path: Path
    filename: str
    type: str

    @classmethod
    def from_path(cls, path) -> "StagedFile":
        path = Path(path).expanduser()
        mime, _ = mimetypes.guess_type(path.name)
        return cls(path=path, filename=path.name, type=mime or "application/octet-stream")

    def as_attachment(self) -> Attachment:
        return Attachment(filename=self.filename, url=self.path.resolve().as_uri(), type=self.type)


class ConsoleRenderer:
    """Prints turns to stdout."""

    def show_turn(self, message: Message) -> None:
        who = "You" if message.role == "user" else "Advisor"
        print(f"\n{who}: {message.content}")
        for a in message.attachments:
            print(f"  [{a.kind}] {a.filename}")

    def show_typing(self, on: bool) -> None:
        if on:
            print("Advisor is typing...", flush=True)

    def notice(self, text: str) -> None:
        print(f"! {text}")

    def clear(self) -> None:
        print("\n--- नमस्ते किसान भाई! Welcome, farmer friend! ---")

    def show_history(self, records: Sequence[ConversationRecord]) -> None:
        if not records:
            print("No chat history yet. Start a conversation!")
            return
        for i, r in enumerate(records):
            print(f"{i:>2}  {r.timestamp:%d %b %H:%M}  {r.preview}")


class ChatViewController:
    def __init__(self, base_url: str, history: LocalHistoryStore,
                 renderer=None, http_client: Optional[httpx.Client] = None,
                 save_delay: float = SAVE_DELAY,
                 confirm: Callable[[str], bool] = lambda prompt: True,
                 timeout: float = 120.0):
        self.history = history
        self.renderer = renderer or ConsoleRenderer()
        self.save_delay = save_delay
        self.confirm = confirm
        self._owns_http = http_client is None
        self.http = http_client or httpx.Client(base_url=base_url, timeout=timeout)

        self.session_id = generate_session_id()
        self.messages: List[Message] = []
        self.staged: List[StagedFile] = []
        self.sending = False

        self._save_lock = threading.Lock()
        self._save_timer: Optional[threading.Timer] = None

    # --- attachments ---

    def stage_attachment(self, path) -> Optional[StagedFile]:
        if len(self.staged) >= MAX_STAGED_FILES:
            self.renderer.notice(f"Maximum {MAX_STAGED_FILES} files allowed")
            return None
        staged = StagedFile.from_path(path)
        self.staged.append(staged)
        return staged

    def remove_attachment(self, index: int) -> None:
        if 0 <= index < len(self.staged):
            del self.staged[index]

    # --- sending ---

    def send(self, text: str, language: str = "auto") -> Optional[Message]:
        text = (text or "").strip()
        if self.sending or (not text and not self.staged):
            return None

        self.sending = True
        staged, self.staged = self.staged, []
        user = Message(role="user", content=text, attachments=[s.as_attachment() for s in staged])
        self._append(user)
        self.renderer.show_typing(True)

        try:
            data = self._post_chat(text, language, staged)
            reply = Message(
                role="assistant",
                content=data["response"],
                attachments=[Attachment(**f) for f in data.get("files") or []],
            )
        except (httpx.HTTPError, OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Chat request failed: %s", e)
            reply = Message(role="assistant", content=FALLBACK_REPLY, error=True)
            self.renderer.show_typing(False)
            self._append(reply)
            return reply
        finally:
            self.sending = False

        self.renderer.show_typing(False)
        self._append(reply)
        self.schedule_save()
        return reply

    def _post_chat(self, text: str, language: str, staged: Sequence[StagedFile]) -> dict:
        form = {"message": text, "sessionId": self.session_id, "language": language}
        with ExitStack() as stack:
            files = [
                ("files", (s.filename, stack.enter_context(open(s.path, "rb")), s.type))
                for s in staged
            ]
            resp = self.http.post("/api/chat", data=form, files=files or None)
        resp.raise_for_status()
        return resp.json()

    def _append(self, message: Message) -> None:
        self.messages.append(message)
        self.renderer.show_turn(message)

    # --- saving ---

    def schedule_save(self) -> None:
        with self._save_lock:
            if self._save_timer is not None:
                self._save_timer.cancel()
            self._save_timer = threading.Timer(self.save_delay, self._save_now)
            self._save_timer.daemon = True
            self._save_timer.start()

    def _cancel_save(self) -> bool:
        with self._save_lock:
            timer, self._save_timer = self._save_timer, None
        if timer is None:
            return False
        timer.cancel()
        return True

    def _save_now(self) -> Optional[ConversationRecord]:
        with self._save_lock:
            self._save_timer = None
            snapshot = list(self.messages)
        return self.history.save_current(snapshot)

    def flush(self) -> Optional[ConversationRecord]:
        """Run a pending debounced save right away."""
        if self._cancel_save():
            return self._save_now()
        return None

    # --- conversations ---

    def new_chat(self) -> bool:
        if self.messages:
            if not self.confirm(NEW_CHAT_PROMPT):
                return False
            self._cancel_save()
            self.history.save_current(list(self.messages))

        old_session = self.session_id
        try:
            self.http.post("/api/new-chat", json={"sessionId": old_session}).raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Could not clear server session %s: %s", old_session, e)

        self.messages = []
        self.staged = []
        self.session_id = generate_session_id()
        self.renderer.clear()
        return True

    def history_entries(self) -> List[ConversationRecord]:
        return self.history.load_all()

    def load_history(self, index: int) -> Optional[ConversationRecord]:
        record = self.history.load_one(index)
        if record is None:
            self.renderer.notice("Chat not found")
            return None

        if self.messages:
            self._cancel_save()
            self.history.save_current(list(self.messages))

        # fresh session id; the old server-side session is left to eviction
        self.messages = list(record.messages)
        self.session_id = generate_session_id()
        self.renderer.clear()
        for m in self.messages:
            self.renderer.show_turn(m)
        return record

    def clear_history(self) -> bool:
        if not self.confirm(CLEAR_HISTORY_PROMPT):
            return False
        self.history.clear_all()
        return True

    def close(self) -> None:
        self.flush()
        if self._owns_http:
            self.http.close()


def _ask(prompt: str) -> bool:
    return input(f"{prompt} [y/N] ").strip().lower() in ("y", "yes")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Chat with the farmer advisor")
    parser.add_argument("--url", default=os.getenv("FARMER_CHAT_URL", "http://127.0.0.1:5000"))
    parser.add_argument("--history", default=os.getenv("FARMER_CHAT_HISTORY", "~/.farmer_chat/history.json"))
    parser.add_argument("--language", default="auto", choices=LANGUAGES)
    args = parser.parse_args(argv)

    setup_logging(os.getenv("LOG_LEVEL", "WARNING"))
    controller = ChatViewController(args.url, LocalHistoryStore(args.history), confirm=_ask)
    controller.renderer.clear()
    print("Commands: /attach PATH, /new, /history, /load N, /clear-history, /quit")

    try:
        while True:
            try:
                line = input("\n> ").strip()
            except EOFError:
                break
            if not line:
                continue
            cmd, _, arg = line.partition(" ")
            if cmd == "/quit":
                break
            elif cmd == "/attach":
                if controller.stage_attachment(arg):
                    print(f"Staged {len(controller.staged)} file(s)")
            elif cmd == "/new":
                controller.new_chat()
            elif cmd == "/history":
                controller.renderer.show_history(controller.history_entries())
            elif cmd == "/load":
                try:
                    controller.load_history(int(arg))
                except ValueError:
                    controller.renderer.notice("Usage: /load N")
            elif cmd == "/clear-history":
                controller.clear_history()
            else:
                controller.send(line, language=args.language)
    finally:
        controller.close()


if __name__ == "__main__":
    main()
