"""
Schemas module - Request/Response schemas and shared enums.
"""
