"""Command line tool for appset-controller."""
