"""
Clinical Trial Pre-Screening API
"""
__version__ = "1.0.0"
