"""Client timeline: turn chat-socket frames and local actions into one ordered transcript.

Everything the widget shows is derived from an append-only log by
`reduce_timeline`. Each log record's index is the `seq` of the entry it
creates, so replaying the same log always yields the same keys and order.

A widget or any other `/ws` consumer owns one `ChatTimeline`: it feeds every
server frame to `receive`, routes user input through `submit`,
`expand_item` and `submit_capture`, and renders `view.entries`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from casabot.agent.recommend.follow_up import templated_follow_up
from casabot.infra.observability.logger import get_logger

logger = get_logger(__name__)

RecordKind = Literal["server", "user", "expand", "follow_up", "capture_open", "capture_close"]
CaptureState = Literal["none", "pending", "completed"]
MessageRole = Literal["user", "bot"]

FOLLOW_UP_DELAY_SECONDS = 1.0


@dataclass(frozen=True)
class LogRecord:
    kind: RecordKind
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MessageEntry:
    key: str
    seq: int
    role: MessageRole
    content: str | None
    properties: tuple[dict[str, Any], ...] = ()
    reasoning: str | None = None
    pending: bool = False
    kind: Literal["message"] = "message"


@dataclass(frozen=True)
class ExpandedItemEntry:
    key: str
    seq: int
    property: dict[str, Any]
    kind: Literal["expanded_item"] = "expanded_item"


@dataclass(frozen=True)
class FollowUpPromptEntry:
    key: str
    seq: int
    property_id: str
    message: str
    kind: Literal["follow_up_prompt"] = "follow_up_prompt"


@dataclass(frozen=True)
class CapturePromptEntry:
    key: str
    seq: int
    kind: Literal["capture_prompt"] = "capture_prompt"


TimelineEntry = Union[MessageEntry, ExpandedItemEntry, FollowUpPromptEntry, CapturePromptEntry]


@dataclass(frozen=True)
class TimelineView:
    entries: tuple[TimelineEntry, ...]
    is_typing: bool
    session_id: str | None
    properties_shown: int
    capture_state: CaptureState

    @property
    def keys(self) -> list[str]:
        return [entry.key for entry in self.entries]


@dataclass
class _Message:
    seq: int
    role: MessageRole
    content: str | None
    properties: list[dict[str, Any]] = field(default_factory=list)
    reasoning: str | None = None
    pending: bool = False


def reduce_timeline(log: list[LogRecord] | tuple[LogRecord, ...]) -> TimelineView:
    """Fold the log into sorted, stably keyed entries; pure and repeatable."""
    messages: list[_Message] = []
    others: list[TimelineEntry] = []
    in_progress: _Message | None = None
    capture: CapturePromptEntry | None = None
    capture_state: CaptureState = "none"
    is_typing = False
    session_id: str | None = None
    shown = 0

    for seq, record in enumerate(log):
        payload = record.payload
        if record.kind == "user":
            messages.append(_Message(seq=seq, role="user", content=str(payload.get("content") or "")))
        elif record.kind == "expand":
            prop = dict(payload.get("property") or {})
            others.append(ExpandedItemEntry(key=f"expanded-{prop.get('id')}-{seq}", seq=seq, property=prop))
        elif record.kind == "follow_up":
            property_id = str(payload.get("property_id") or "")
            others.append(
                FollowUpPromptEntry(
                    key=f"follow-up-{property_id}-{seq}",
                    seq=seq,
                    property_id=property_id,
                    message=str(payload.get("message") or ""),
                )
            )
        elif record.kind == "capture_open":
            if capture_state == "none":
                capture = CapturePromptEntry(key=f"capture-{seq}", seq=seq)
                capture_state = "pending"
        elif record.kind == "capture_close":
            if capture_state == "pending":
                capture = None
                capture_state = "completed"
        elif record.kind == "server":
            event_type = payload.get("type")
            if event_type == "session_start":
                session_id = payload.get("sessionId") or session_id
                messages.append(_Message(seq=seq, role="bot", content=payload.get("message") or ""))
            elif event_type == "typing":
                is_typing = bool(payload.get("isTyping"))
                if is_typing:
                    in_progress = None
            elif event_type == "bot_response_chunk":
                fragment = str(payload.get("content") or "")
                if in_progress is not None:
                    joined = f"{in_progress.content} {fragment}" if in_progress.content else fragment
                    in_progress.content = joined
                else:
                    in_progress = _Message(seq=seq, role="bot", content=fragment, pending=True)
                    messages.append(in_progress)
            elif event_type == "bot_response":
                properties = list(payload.get("properties") or [])
                shown += len(properties)
                final_text = payload.get("content")
                if payload.get("isChunked") and payload.get("isLastChunk") and in_progress is not None:
                    in_progress.content = final_text or in_progress.content
                    in_progress.properties = properties
                    in_progress.reasoning = payload.get("reasoning")
                    in_progress.pending = False
                else:
                    messages.append(
                        _Message(
                            seq=seq,
                            role="bot",
                            content=final_text,
                            properties=properties,
                            reasoning=payload.get("reasoning"),
                        )
                    )
                in_progress = None
                if payload.get("stopTyping"):
                    is_typing = False
            elif event_type == "bot_property":
                properties = list(payload.get("properties") or [])
                if properties:
                    shown += len(properties)
                    messages.append(
                        _Message(seq=seq, role="bot", content=None, properties=properties, reasoning=payload.get("reasoning"))
                    )
                if payload.get("isLastProperty") or payload.get("stopTyping"):
                    is_typing = False
            elif event_type == "error":
                is_typing = False
                in_progress = None
                messages.append(
                    _Message(seq=seq, role="bot", content=payload.get("message") or "Ocorreu um erro. Tente novamente.")
                )

    entries: list[TimelineEntry] = [
        MessageEntry(
            key=f"message-{position}",
            seq=item.seq,
            role=item.role,
            content=item.content,
            properties=tuple(item.properties),
            reasoning=item.reasoning,
            pending=item.pending,
        )
        for position, item in enumerate(messages)
    ]
    entries.extend(others)
    if capture is not None:
        entries.append(capture)
    entries.sort(key=lambda entry: entry.seq)
    return TimelineView(
        entries=tuple(entries),
        is_typing=is_typing,
        session_id=session_id,
        properties_shown=shown,
        capture_state=capture_state,
    )


SendFn = Callable[[dict[str, Any]], Awaitable[None]]
FollowUpSource = Callable[[dict[str, Any]], Awaitable[str]]
CaptureSink = Callable[[dict[str, Any]], Awaitable[None]]


class ChatTimeline:
    """Stateful front for `reduce_timeline`: records frames and user actions."""

    def __init__(
        self,
        *,
        send: SendFn,
        follow_up_source: FollowUpSource | None = None,
        capture_sink: CaptureSink | None = None,
        follow_up_delay: float = FOLLOW_UP_DELAY_SECONDS,
    ) -> None:
        self._send = send
        self._follow_up_source = follow_up_source
        self._capture_sink = capture_sink
        self._follow_up_delay = max(0.0, follow_up_delay)
        self._log: list[LogRecord] = []
        self._held_message: str | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def log(self) -> tuple[LogRecord, ...]:
        return tuple(self._log)

    @property
    def view(self) -> TimelineView:
        return reduce_timeline(self._log)

    @property
    def entries(self) -> tuple[TimelineEntry, ...]:
        return self.view.entries

    @property
    def held_message(self) -> str | None:
        return self._held_message

    def receive(self, event: dict[str, Any]) -> None:
        self._log.append(LogRecord("server", dict(event)))

    async def submit(self, text: str) -> bool:
        """Send a user message; returns False when it was ignored or held for lead capture."""
        content = text.strip()
        view = self.view
        if not content or view.is_typing:
            return False
        if view.capture_state == "pending":
            return False
        if view.capture_state == "none" and view.properties_shown > 0:
            self._held_message = content
            self._log.append(LogRecord("capture_open"))
            logger.info("timeline.capture.opened properties_shown=%s", view.properties_shown)
            return False
        await self._deliver(content)
        return True

    async def submit_capture(self, lead: dict[str, Any]) -> bool:
        """Complete the capture form, drop the prompt and release the held message."""
        if self.view.capture_state != "pending":
            return False
        if self._capture_sink is not None:
            await self._capture_sink(dict(lead))
        self._log.append(LogRecord("capture_close"))
        held, self._held_message = self._held_message, None
        if held:
            await self._deliver(held)
        return True

    def expand_item(self, listing: dict[str, Any]) -> asyncio.Task[None]:
        """Show listing details now; a follow-up prompt lands after the delay."""
        self._log.append(LogRecord("expand", {"property": dict(listing)}))
        task = asyncio.create_task(self._follow_up(dict(listing)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _deliver(self, content: str) -> None:
        self._log.append(LogRecord("user", {"content": content}))
        await self._send({"type": "user_message", "content": content})

    async def _follow_up(self, listing: dict[str, Any]) -> None:
        await asyncio.sleep(self._follow_up_delay)
        message: str | None = None
        if self._follow_up_source is not None:
            try:
                message = await self._follow_up_source(listing)
            except Exception as exc:
                logger.debug("timeline.follow_up.fallback property_id=%s error=%s", listing.get("id"), exc)
        if not message or not message.strip():
            message = templated_follow_up(str(listing.get("title") or ""))
        self._log.append(
            LogRecord("follow_up", {"property_id": str(listing.get("id") or ""), "message": message.strip()})
        )
