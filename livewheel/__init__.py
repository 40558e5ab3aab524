"""Live-stream prize wheel: webhook relay plus spin-sequencing engine."""

__version__ = "0.3.0"
