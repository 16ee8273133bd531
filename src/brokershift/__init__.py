"""Weekly shift allocation for real-estate brokers."""

__version__ = "0.1.0"
