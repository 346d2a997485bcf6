"""scapwatch command-line interface."""
