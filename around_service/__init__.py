"""
Around - location-tagged media post service
"""
__version__ = "1.0.0"
