"""Trailkeeper: time-bounded draft trails with owner-gated finalization."""
