"""app.integrations — External service gateway modules.

All outbound HTTP calls to third-party APIs must go through a gateway in
this package, never via bare `requests` calls in services or blueprints.
Every call is:
  - Authenticated (credentials injected by the gateway)
  - Retried with backoff on network errors, 429 and 5xx
  - Logged with channel, attempt and status

Current gateways:
  messaging_gateway.MessagingGateway — Twilio Messages API (SMS, WhatsApp)
"""
