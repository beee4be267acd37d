"""Capture a window of an HLS live stream into a single file."""
