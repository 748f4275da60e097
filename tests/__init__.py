"""
Test Suite

Unit tests for the connector framework. Exchange HTTP calls and the Kraken
WebSocket are replaced with fakes, so the suite runs offline.

Structure:
- tests/unit/: signing, HTTP client, normalization, connectors, aggregator,
  live stream reducer and client, FastAPI routes

Uses pytest with pytest-asyncio for testing async functionality.
"""
