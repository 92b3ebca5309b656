"""Tests for the Bedrock embedder.

Unit tests run against an in-process fake transport; no AWS access is needed.
"""
