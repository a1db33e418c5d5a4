"""Small shared helpers (clock, trace)."""
