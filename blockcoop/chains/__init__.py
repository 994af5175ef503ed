"""Chain client modules."""
