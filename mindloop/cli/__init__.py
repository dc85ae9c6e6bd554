"""mindloop command-line interface."""
