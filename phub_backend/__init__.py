"""
PhotoHub indexer backend: catalog store, index pipeline, collaborators and routes.
"""
