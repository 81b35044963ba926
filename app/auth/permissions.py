"""
Central registry of allowed actions per role.
"""
ROLE_SCOPES = {
    "client": {"place_order", "view_own_orders", "manage_cart"},
    "admin":  {"*"},
}

def role_has_scope(role: str, action: str) -> bool:
    scopes = ROLE_SCOPES.get(role, set())
    return "*" in scopes or action in scopes
