"""
Shared geographic and retry helpers for FenceSync.
"""
