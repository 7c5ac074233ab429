from .runner import apply_pending_migrations, ensure_migrations_table, get_applied_versions, pending_migrations

__all__ = [
    "apply_pending_migrations",
    "ensure_migrations_table",
    "get_applied_versions",
    "pending_migrations",
]
