"""
opsdeck.observability

Observability package.

Responsibilities:
- Structured logging configuration.
- Request and job context propagation for consistent log enrichment.
"""

# Package marker.
