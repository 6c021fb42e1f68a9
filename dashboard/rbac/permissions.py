from dashboard.db.models import UserRole

# ─── PERMISSION DEFINITIONS ─────────────────────────────

STAFF = {UserRole.ADMIN, UserRole.INSPECTOR}
ADMIN_ONLY = {UserRole.ADMIN}

PERMISSIONS = {
    # Dashboard
    "dashboard.view":       STAFF,

    # Users
    "users.view":           STAFF,
    "users.manage":         ADMIN_ONLY,

    # Projects
    "projects.view":        STAFF,
    "projects.edit":        ADMIN_ONLY,
    "projects.delete":      ADMIN_ONLY,

    # Finances
    "finances.view":        STAFF,
    "finances.manage":      ADMIN_ONLY,

    # Contractors
    "contractors.view":     STAFF,
    "contractors.manage":   ADMIN_ONLY,

    # Deliveries
    "deliveries.view":      STAFF,
    "deliveries.manage":    ADMIN_ONLY,

    # Material orders
    "orders.view":          STAFF,
    "orders.manage":        ADMIN_ONLY,

    # Client service requests
    "requests.view":        STAFF,
    "requests.manage":      ADMIN_ONLY,

    # Notifications & messaging
    "notifications.view":   STAFF,
    "notifications.manage": ADMIN_ONLY,
    "messages.view":        STAFF,
    "messages.send":        ADMIN_ONLY,
    "messages.broadcast":   ADMIN_ONLY,
}

ROLE_NAMES = {
    UserRole.CLIENT: "Client",
    UserRole.ADMIN: "Administrator",
    UserRole.CONTRACTOR: "Contractor",
    UserRole.INSPECTOR: "Inspector",
}


def _as_role(role) -> UserRole | None:
    try:
        return UserRole(role)
    except ValueError:
        return None


def has_permission(role, permission: str) -> bool:
    r = _as_role(role)
    if r is None:
        return False
    return r in PERMISSIONS.get(permission, set())


def get_user_permissions(role) -> list[str]:
    r = _as_role(role)
    if r is None:
        return []
    return sorted(p for p, roles in PERMISSIONS.items() if r in roles)


def role_name(role) -> str:
    r = _as_role(role)
    return ROLE_NAMES.get(r, str(role)) if r else str(role)
