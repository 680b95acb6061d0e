"""Folder decoding layer.

This module dispatches coder graphs to codec implementations and caches
decoded folders so solid blocks are decompressed once per archive.
"""
