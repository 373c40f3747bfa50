"""
Incremental transcript assembly.

Streamed transcription deltas are folded into an ordered list of Messages:
a delta from the same speaker as the last unfinalized Message continues it,
anything else finalizes the whole list and opens a new Message.
"""

from typing import Callable, Iterable, List, Optional

import structlog

from mayra.core.models import GroundingReference, Message, Sender

logger = structlog.get_logger(__name__)


def merge_references(
    existing: Optional[List[GroundingReference]],
    incoming: Optional[Iterable[GroundingReference]],
) -> Optional[List[GroundingReference]]:
    """Merge citations by uri; incoming entries replace stale ones of the same uri."""
    if not incoming:
        return existing
    merged = {ref.uri: ref for ref in (existing or [])}
    for ref in incoming:
        merged[ref.uri] = ref
    return list(merged.values())


class TranscriptAssembler:
    """Owns the visible Message sequence for the assistant."""

    def __init__(
        self,
        messages: Optional[List[Message]] = None,
        on_change: Optional[Callable[[List[Message]], None]] = None,
    ):
        self._messages: List[Message] = list(messages or [])
        self._on_change = on_change

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def apply(
        self,
        sender: Sender,
        text: str,
        references: Optional[List[GroundingReference]] = None,
    ) -> Message:
        """Fold one transcription delta into the sequence and return the affected Message."""
        last = self._messages[-1] if self._messages else None
        if last is not None and last.sender == sender and not last.is_final:
            updated = last.model_copy(update={
                "text": last.text + text,
                "grounding_references": merge_references(last.grounding_references, references),
            })
            self._messages[-1] = updated
        else:
            self._finalize()
            updated = Message(
                text=text,
                sender=sender,
                grounding_references=merge_references(None, references),
            )
            self._messages.append(updated)
            logger.debug("Transcript turn opened", sender=sender.value, message_id=updated.id)
        self._notify()
        return updated

    def apply_input(self, text: str) -> Message:
        return self.apply(Sender.USER, text)

    def apply_output(self, text: str, references: Optional[List[GroundingReference]] = None) -> Message:
        return self.apply(Sender.AGENT, text, references)

    def attach_references(self, references: List[GroundingReference]) -> bool:
        """Merge citations that arrived without text into the open agent Message."""
        last = self._messages[-1] if self._messages else None
        if not references or last is None or last.sender != Sender.AGENT or last.is_final:
            return False
        self._messages[-1] = last.model_copy(update={
            "grounding_references": merge_references(last.grounding_references, references),
        })
        self._notify()
        return True

    def finalize_all(self) -> None:
        """Mark every Message final (turn complete or interrupted)."""
        if self._finalize():
            self._notify()

    def clear(self) -> None:
        self._messages = []
        self._notify()

    def _finalize(self) -> bool:
        changed = False
        for index, message in enumerate(self._messages):
            if not message.is_final:
                self._messages[index] = message.model_copy(update={"is_final": True})
                changed = True
        return changed

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.messages)
