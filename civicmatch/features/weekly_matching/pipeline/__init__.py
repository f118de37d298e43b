"""
Pure matching pipeline for weekly matching.

Selection, scoring and assembly do no I/O; the orchestrator feeds them
data read from the stores.
"""

__all__ = ["assembly", "scoring", "selection"]
