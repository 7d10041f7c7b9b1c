"""
GraphTools: Entra ID Entitlement Removal
==========================================
Strips a user's entitlements (group memberships and ownerships, licenses,
app ownerships, role assignments, PIM eligibilities, access packages,
delegated grants) from an Entra ID tenant through Microsoft Graph.

WARNING: Unless --dry-run is given, this tool MODIFIES the tenant.
         Every mutating request is validated and audited by the Safety Guardian.
"""

__version__ = "1.0.0"
__author__ = "GraphTools"
