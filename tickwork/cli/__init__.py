"""Tickwork command line interface."""
