"""
FastAPI Application Package

HTTP surface over the connector aggregator: per-exchange and aggregated
perpetuals snapshots plus MEXC performance windows.
"""
