"""Delivery layer: plan and emit the timed events of one response cycle.

`plan_delivery` is pure and decides what goes out and at which offset.
`DeliveryScheduler` turns a plan into one asyncio task per cycle, so a single
`cancel()` drops every pending emission when the socket goes away.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from casabot.agent.delivery.chunker import Chunk
from casabot.agent.events.event_types import (
    DeliveryEvent,
    ItemRevealEvent,
    TextChunkEvent,
    TextFinalEvent,
    to_wire,
)
from casabot.infra.observability.logger import get_logger
from casabot.protocol.messages import ListingDto

logger = get_logger(__name__)

ITEM_DELAY_MS = (2000, 4000)

SendFn = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class ScheduledEvent:
    """One event and its offset (ms) from the start of the cycle's delivery."""

    offset_ms: int
    event: DeliveryEvent

    @property
    def stops_typing(self) -> bool:
        return bool(getattr(self.event, "stop_typing", False))


def plan_delivery(
    chunks: Sequence[Chunk],
    items: Sequence[ListingDto],
    *,
    reasoning: str | None = None,
    rng: random.Random | None = None,
) -> list[ScheduledEvent]:
    """Lay out text chunks, then listing reveals, on one additive timeline."""
    source = rng or random
    plan: list[ScheduledEvent] = []
    offset = 0
    fragments: list[str] = []
    has_items = bool(items)

    for chunk in chunks:
        offset += chunk.delay_ms
        if chunk.content:
            fragments.append(chunk.content)
        if not chunk.is_last:
            plan.append(ScheduledEvent(offset, TextChunkEvent(content=chunk.content)))
            continue
        plan.append(
            ScheduledEvent(
                offset,
                TextFinalEvent(
                    content=" ".join(fragments),
                    reasoning=None if has_items else reasoning,
                    stop_typing=not has_items,
                ),
            )
        )
        break

    last_index = len(items) - 1
    for index, item in enumerate(items):
        offset += source.randint(*ITEM_DELAY_MS)
        is_last = index == last_index
        plan.append(
            ScheduledEvent(
                offset,
                ItemRevealEvent(
                    properties=[item],
                    reasoning=reasoning if is_last else None,
                    is_last_property=is_last,
                    stop_typing=is_last,
                ),
            )
        )
    return plan


class DeliveryScheduler:
    """Emit planned events in order, sleeping between offsets."""

    def __init__(self, *, time_scale: float = 1.0) -> None:
        self._time_scale = max(0.0, time_scale)

    def start(
        self,
        plan: Sequence[ScheduledEvent],
        send: SendFn,
        *,
        session_id: str,
        on_finished: Callable[[], None] | None = None,
    ) -> asyncio.Task[None]:
        return asyncio.create_task(
            self._run(list(plan), send, session_id=session_id, on_finished=on_finished),
            name=f"delivery:{session_id}",
        )

    async def _run(
        self,
        plan: list[ScheduledEvent],
        send: SendFn,
        *,
        session_id: str,
        on_finished: Callable[[], None] | None,
    ) -> None:
        elapsed = 0
        sent = 0
        try:
            for item in plan:
                wait_ms = item.offset_ms - elapsed
                if wait_ms > 0 and self._time_scale > 0:
                    await asyncio.sleep(wait_ms / 1000 * self._time_scale)
                else:
                    await asyncio.sleep(0)
                elapsed = item.offset_ms
                await send(to_wire(item.event))
                sent += 1
            logger.info("delivery.completed session_id=%s events=%s", session_id, sent)
        except asyncio.CancelledError:
            logger.info(
                "delivery.cancelled session_id=%s sent=%s pending=%s",
                session_id,
                sent,
                len(plan) - sent,
            )
            raise
        except Exception as exc:
            # Send failures mean the channel is gone; the rest of the cycle is dropped.
            logger.warning(
                "delivery.send_failed session_id=%s sent=%s error=%s",
                session_id,
                sent,
                exc,
            )
        finally:
            if on_finished is not None:
                on_finished()
