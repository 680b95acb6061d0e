"""Container layer.

This module parses 7z signature and metadata headers into an archive index.
It also owns the byte sources and handles that keep an archive open.
"""
