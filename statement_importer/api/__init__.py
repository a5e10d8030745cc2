"""
API package.
"""
