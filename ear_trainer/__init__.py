"""Round and session orchestration for timed ear-training practice."""

__version__ = "0.1.0"
