"""Call-lifecycle events and the capability every control-plane source offers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum


class CallEventKind(str, Enum):
    NEW_CALL = "new_call"
    DTMF = "dtmf"
    CALL_END = "call_end"


@dataclass(frozen=True, slots=True)
class CallEvent:
    kind: CallEventKind
    call_id: str
    caller_identity: str | None = None
    hospital_context: str | None = None
    digit: str | None = None


@dataclass(frozen=True, slots=True)
class CallInfo:
    """Metadata the control plane hands to the bridge that will serve a call."""

    call_id: str
    caller_identity: str
    hospital_context: str | None = None


class CallEventSource(ABC):
    """A single call-control integration (ARI events, webhooks, ...)."""

    @abstractmethod
    def subscribe(self) -> AsyncIterator[CallEvent]:
        """Yield call events for as long as the process runs."""

    async def prepare_media(self, event: CallEvent) -> None:
        """Answer the call and route its media to the /stream endpoint."""

    async def release_media(self, event: CallEvent) -> None:
        """Tear down call-control resources created by ``prepare_media``."""

    async def aclose(self) -> None:
        return None
