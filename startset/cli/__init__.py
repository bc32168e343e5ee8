"""StartSet command-line interface."""
