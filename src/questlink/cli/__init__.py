"""questlink command line interface."""
