"""Job store, per-pylon routing, agent limits, webhook signatures and tool events."""

__version__ = "0.1.0"