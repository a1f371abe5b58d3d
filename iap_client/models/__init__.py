"""
Purchase client models.
"""
