"""
Core domain: models, validation rules, transformation and configuration.
"""
