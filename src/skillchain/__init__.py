"""skillchain: a durable state machine for multi-step skill workflows."""

__version__ = "0.1.0"
