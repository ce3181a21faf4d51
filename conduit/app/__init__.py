"""
Conduit FastAPI application.

Use create_app() to build an app around an existing WebhookHandlerManager
and IntegrationRegistry, or let it build both from settings.
"""
