"""
Parsers for manifests and Dockerfiles.
"""
