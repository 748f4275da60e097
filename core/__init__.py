"""
Core Package

Contains the exchange-agnostic core logic including:
- Signing: per-exchange request and challenge signatures
- RequestClient: one signed REST call with error classification
- Normalize: field chains, shape matchers and numeric coercion
- Connector / ConnectorAggregator: per-exchange pipelines and the fan-out over them
- Schemas: Pydantic models for normalized account state

Exchange packages plug into this layer; nothing here knows a venue's URL.
"""
