"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from config.settings import Settings
from db.repository import CallSessionRepository
from telephony.events import CallEventSource
from telephony.media_bridge import SpeechClientFactory
from telephony.recording import RecordingSink
from telephony.registry import BridgeRegistry
from telephony.session import SessionStore


@dataclass(slots=True)
class RelayServices:
    """Process-wide collaborators built once at startup."""

    settings: Settings
    sessions: SessionStore
    registry: BridgeRegistry
    sink: RecordingSink
    records: CallSessionRepository
    source: CallEventSource
    speech_factory: SpeechClientFactory


def get_services(request: Request) -> RelayServices:
    return request.app.state.services


def get_repository(request: Request) -> CallSessionRepository:
    return get_services(request).records
