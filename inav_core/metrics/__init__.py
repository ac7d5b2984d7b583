"""
Metrics Module: Diagnostics, counters, histograms.

Every positioning or navigation cycle that yields no result records a
drop reason code, so absence of output is never silent.

Usage:
    from inav_core.metrics import get_metrics

    metrics = get_metrics()
    metrics.increment('position_cycles')
    metrics.increment_drop('insufficient_anchors')
    metrics.record_histogram('fused_accuracy_m', 1.23)
"""

from .counters import MetricsCollector

# Global collector for easy access
_global_metrics = None


def get_metrics() -> MetricsCollector:
    """
    Get the global metrics collector.

    Returns:
        MetricsCollector instance
    """
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics


def reset_metrics():
    """Reset global metrics (for testing)."""
    global _global_metrics
    _global_metrics = MetricsCollector()


__all__ = ['MetricsCollector', 'get_metrics', 'reset_metrics']
