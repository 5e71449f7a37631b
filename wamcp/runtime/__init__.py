"""Bridge and protocol-server runtime supervision."""
