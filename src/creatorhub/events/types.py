"""Event type constants.

Centralizing event types as constants prevents typos and makes it easy
to discover every event the system records.
"""

# ─── Users ────────────────────────────────────────────────

USER_REGISTERED = "user.registered"

# ─── Messaging ────────────────────────────────────────────

CONVERSATION_CREATED = "conversation.created"
MESSAGE_SENT = "message.sent"
MESSAGE_READ = "message.read"
CONVERSATION_READ = "conversation.read"

# ─── Notifications ────────────────────────────────────────

NOTIFICATION_CREATED = "notification.created"
NOTIFICATION_READ = "notification.read"
NOTIFICATIONS_ALL_READ = "notification.all_read"

# ─── Appointments ─────────────────────────────────────────

APPOINTMENT_PROPOSED = "appointment.proposed"
APPOINTMENT_RESPONDED = "appointment.responded"
APPOINTMENT_CANCELED = "appointment.canceled"
APPOINTMENT_REMINDER_SENT = "appointment.reminder_sent"

# ─── Communications ───────────────────────────────────────

TEMPLATE_CREATED = "template.created"
TEMPLATE_UPDATED = "template.updated"
TEMPLATE_DELETED = "template.deleted"
COMMUNICATION_SENT = "communication.sent"
COMMUNICATION_FAILED = "communication.failed"
