"""orchard — multi-repository workspace orchestrator."""

__version__ = "0.1.0"
