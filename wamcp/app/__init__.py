"""Configuration-to-runtime wiring."""
