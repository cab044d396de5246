"""
Manifest side tests: parsing, hierarchy, writer, reader and stores.
"""
