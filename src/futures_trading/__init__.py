"""Risk-gated futures trading control plane for prop-firm challenge accounts."""

__version__ = "0.1.0"
