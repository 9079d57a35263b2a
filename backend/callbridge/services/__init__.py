"""
Realtime Call Bridge - Services Package

External collaborators reached over HTTP.
"""

from .results_reporter import ResultsReporter, create_results_reporter

__all__ = [
    "ResultsReporter",
    "create_results_reporter",
]
