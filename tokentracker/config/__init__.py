"""
Configuration loading for the token tracker.
"""
