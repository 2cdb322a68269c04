"""cmdrelay -- HTTP to WebSocket command relay.

A local relay that accepts command payloads on an HTTP endpoint and
broadcasts them verbatim to every connected WebSocket client. HTTP and
WebSocket traffic share a single listener.
"""

__version__ = "0.1.0"
