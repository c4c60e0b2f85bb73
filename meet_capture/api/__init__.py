"""
Operator REST API.
"""
