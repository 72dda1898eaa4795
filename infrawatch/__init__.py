"""Infrastructure health aggregation: metrics backend, tunneled agents, probes."""

__version__ = "0.1.0"
