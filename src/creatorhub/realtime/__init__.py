"""Real-time infrastructure — connection registry, Redis pub/sub, WebSocket.

Events flow through two hops:
1. Services → publish_event() → Redis PUBLISH per recipient channel
   (or straight to the local registry when Redis is not running)
2. Relay task → local ConnectionRegistry → each open WebSocket of the user

Everything pushed here is persisted first, so a client that misses a push
catches up by polling the REST API.
"""
