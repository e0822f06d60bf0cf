"""
Orchestrators for FenceSync.

This module contains the orchestrators that coordinate
local state, persistence and change broadcasting.
"""
from .reconciliation import ReconciliationController

__all__ = ["ReconciliationController"]
