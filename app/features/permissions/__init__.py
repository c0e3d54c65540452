"""
Permission management feature module.

Implements Role-Based Access Control (RBAC) over the fixed Owner/Admin/Viewer
roles with organization-scoped reachability for a two-level organization tree.
"""
