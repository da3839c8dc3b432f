"""Role-based permissions for marketplace participants.

Each role carries a fixed permission set.  Ownership rules (only the seller
may approve an order or edit a listing) are enforced by the services; the
permissions here gate which kinds of action a role may attempt at all.

Permission naming: `<resource>.<action>`
"""

from __future__ import annotations


ALL_PERMISSIONS: set[str] = {
    "batch.create",         # harvest a new batch + root listing
    "listing.read",
    "listing.write",        # reprice / (de)activate own listings
    "order.create",         # request to buy from a listing
    "order.manage",         # approve / reject / complete own orders
    "proof.upload",         # store proof documents / images
}


ROLE_DEFAULTS: dict[str, set[str]] = {
    "farmer": ALL_PERMISSIONS.copy(),

    "distributor": {
        "listing.read", "listing.write",
        "order.create", "order.manage",
        "proof.upload",
    },

    "retailer": {
        "listing.read", "listing.write",
        "order.create", "order.manage",
        "proof.upload",
    },

    # End buyers hold what they bought but do not resell it
    "consumer": {
        "listing.read",
        "order.create", "order.manage",
    },
}


def resolve_permissions(role: str) -> list[str]:
    """Return the sorted permission list for a role (empty for unknown roles)."""
    return sorted(ROLE_DEFAULTS.get(role, set()))


def has_permission(user_permissions: list[str] | set[str], required: str) -> bool:
    """Check whether a permission set satisfies a requirement."""
    return required in user_permissions
