"""
Telemetry ingestion and correlation engine for power meters and EVs.

CHANGELOG:
- 2026-10-10: Initial creation (STORY-101)

TODO:
- None
"""

__version__ = "0.1.0"
