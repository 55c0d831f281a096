"""
Business Portal Backend

Multi-tenant backend for the company/CRM/project/admin portal:
tenant resolution, scoped roles, JSON-driven app experiences with a
tool-call bridge, MCP signing secrets and integration recommendations.
"""

__version__ = "1.0.0"
