"""Streaming import pipeline.

This package walks a feed export document token by token, decodes its
concepts and mappings and hands fixed-size batches to a bounded worker pool.
"""
