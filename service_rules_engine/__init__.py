"""
Rules Engine service.
"""
