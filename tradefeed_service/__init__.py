"""
Trade Feed Service - public trade feed, featured placement and trader ratings
"""
__version__ = "1.0.0"
