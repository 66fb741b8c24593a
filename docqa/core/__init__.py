"""Core utilities: exceptions, logging and metrics."""
