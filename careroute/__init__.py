"""
CareRoute: validation queue, provider capacity and provider ranking services.
"""

__version__ = "1.0.0"
