"""
Build-context preparation and Dockerfile validation.
"""
