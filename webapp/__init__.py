"""HTTP surface and service wiring."""
