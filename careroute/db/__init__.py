"""
Database package for CareRoute.
"""
