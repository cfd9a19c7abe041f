"""
Command line interface for chunkvault.
"""
