"""
songbridge: multi-provider music search with a streaming download relay.
"""

__version__ = "0.3.0"
