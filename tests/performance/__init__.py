"""Performance tests for the transit motion engine."""
