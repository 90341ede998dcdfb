"""
examguard - real-time exam proctoring core
"""

__version__ = "1.0.0"
