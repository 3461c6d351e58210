"""Position lifecycle, exit management and crash recovery."""
