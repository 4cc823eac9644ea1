"""
Feature packages of the PhotoHub indexer.
"""
