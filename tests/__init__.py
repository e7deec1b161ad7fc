"""
Test Suite

Aegis Autonomy engine tests.
"""
