"""Core infrastructure: errors, logging, configuration, persistence."""
