"""Live execution against a venue."""
