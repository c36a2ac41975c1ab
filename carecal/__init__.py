"""CareCal: shared appointment scheduling for care teams."""

__version__ = "0.1.0"
