"""
Utility modules for the LLMGate library.

This package contains small pure helpers used across the gateway: typed
access to loosely-typed metadata mappings and byte-based token estimates.
"""
