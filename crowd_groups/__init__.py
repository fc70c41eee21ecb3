"""
Crowd Groups - Resolve a user's group memberships from Atlassian Crowd or LDAP.

This package provides an external groups provider for host applications that
pages through a user's direct and nested groups and returns them as one list.
"""

__version__ = "1.0.0"
__author__ = "Crowd Groups Team"
