"""CreatorHub — creator management platform backend.

Client onboarding, appointment proposals, messaging and notifications,
with real-time delivery to connected clients over WebSockets.
"""

__version__ = "0.1.0"
