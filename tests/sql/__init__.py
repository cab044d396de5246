"""
SQL side tests: type mapping, DDL generation and execution.
"""
