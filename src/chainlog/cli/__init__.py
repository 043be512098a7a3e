"""
ChainLog command-line interface.
"""
