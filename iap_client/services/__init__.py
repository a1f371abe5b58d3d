"""
Purchase client services.
"""
