"""
Route modules for the CareRoute API.
"""
