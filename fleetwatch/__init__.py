"""Reachability monitoring and status history for a fleet of network devices."""

__version__ = "0.1.0"
