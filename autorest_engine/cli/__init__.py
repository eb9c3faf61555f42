"""
Command line interface for AUTOREST_ENGINE.
"""
