"""Domain-specific exceptions for the audio relay.

Adapters wrap transport and storage library errors in these so the bridge and
the control-plane dispatcher only have to know about one hierarchy.
"""

from __future__ import annotations


class RelayError(Exception):
    default_detail: str = "Relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class SpeechEndpointConnectError(RelayError):
    default_detail = "Speech endpoint connection could not be opened."


class ControlPlaneError(RelayError):
    default_detail = "Call-control request failed."


class StorageError(RelayError):
    default_detail = "Storage operation failed."
