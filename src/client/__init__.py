"""Remote feed access.

This package downloads concept dictionary exports from a subscription
endpoint and exposes them as byte streams for the ingest pipeline.
"""
