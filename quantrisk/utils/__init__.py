"""
Logging setup and command-line interface.
"""
