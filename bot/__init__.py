"""Bot package __init__.py"""
