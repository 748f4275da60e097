"""
Exchange Connectors Package

Each supported exchange has its own subfolder with:
- api_client.py: signed REST calls, raw payloads out
- normalizer.py: field chains and shape tables for that exchange
- __init__.py: the Connector subclass that sequences calls and builds a snapshot

Kraken additionally ships stream_state.py and ws_client.py for the live
private feeds.

Adding an exchange means adding a subfolder and registering its Connector
in core.aggregator; nothing else changes.
"""
