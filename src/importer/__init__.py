"""Import system integration: path hook, finder, and loader."""
