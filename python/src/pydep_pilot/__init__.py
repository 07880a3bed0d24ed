"""
PyDep Pilot

Inspect, update and remove pip-managed packages and discover new ones on
PyPI. The synchronization engine drives pip as a cancellable child process,
queries PyPI, and pushes progressively enriched package snapshots to a
display surface.
"""

__version__ = "1.0.0"
