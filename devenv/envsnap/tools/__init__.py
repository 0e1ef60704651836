"""
Command-line tools for envsnap.
"""
