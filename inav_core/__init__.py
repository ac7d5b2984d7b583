"""
Indoor Navigation (inav) Core Package.

Positioning fusion and multi-floor pathfinding for indoor navigation.

Package structure:
- proto: Value types (positions, readings, estimates, instructions)
- localization: Signal model, position estimators, fusion and smoothing
- navigation: Navigation graph, A* pathfinding, caching and rerouting
- metrics: Diagnostics, counters, histograms
"""

__version__ = "0.1.0"
__author__ = "Indoor Navigation Team"

# Convenience imports
# from .metrics import get_metrics
# from .localization import PositioningSession
