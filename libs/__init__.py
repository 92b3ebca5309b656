"""Shared libraries for the Bedrock embedder.

Subpackages:
- ``libs.common``: configuration, logging, metrics, and telemetry events.
- ``libs.embedder``: the embedding request engine and its concurrency gate.

Usage:
- Import stable, reusable functionality from here to keep caller code lean.
"""
