"""
Warden - identity provisioning and role-based access control.
"""

__version__ = "0.1.0"
