"""Intune Hydration Kit.

Bootstraps a Microsoft Intune tenant with baseline groups, filters,
policies, templates, profiles and app registrations through Microsoft Graph.
"""

__version__ = "0.1.0"
