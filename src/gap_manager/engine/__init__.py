"""Core gap engine - orchestrates the per-tick pipeline.

Contains:
- LiveGapEngine: Snapshot → Progress Tracker → Gap Estimator → Report
"""

from .live_gap_engine import LiveGapEngine, EngineState

__all__ = ['LiveGapEngine', 'EngineState']
