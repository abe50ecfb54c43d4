"""Telephony side of the relay.

Call-control events arrive through a control-plane source (Asterisk ARI or
webhooks); each call's media stream is served by a ``MediaBridge`` that relays
audio to the streaming speech endpoint and captures both directions.
"""
