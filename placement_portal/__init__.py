"""
Placement Portal
A multi-tenant campus placement platform.

Architecture:
- MongoDB: every entity (tenants, jobs, applications, logs, settings)
- FastAPI: REST API consumed by role-specific dashboards
- Policy, eligibility and the application state machine form the core
"""

__version__ = "1.0.0"
