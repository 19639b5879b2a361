"""
Shared utilities: configuration, logging, error codes, pacing and report formatting.
"""
