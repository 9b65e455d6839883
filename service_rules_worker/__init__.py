"""
Rules Worker package.
"""
