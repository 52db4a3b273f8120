"""Optimize images in place when they land in the bucket."""
