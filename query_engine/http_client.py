"""
Blocking HTTP transport for operator webhooks.

Slack alerts are raised from logging and error paths that may run outside the
event loop, so they go through requests rather than the pooled httpx client
used for upstream systems.

Usage:
    from query_engine.http_client import post

    response = post(webhook_url, json=payload)
"""

import requests

WEBHOOK_TIMEOUT = 10  # seconds


class WebhookTransport:
    """requests wrapper that pins TLS verification and a short timeout."""

    timeout = WEBHOOK_TIMEOUT

    def post(self, url: str, **kwargs) -> requests.Response:
        # Callers may shorten the timeout but never switch off verification
        kwargs["verify"] = True
        kwargs.setdefault("timeout", self.timeout)
        return requests.post(url, **kwargs)


_transport = WebhookTransport()
post = _transport.post
