"""
Stepwise
Blueprint registry.
"""
