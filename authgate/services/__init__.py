from authgate.services.users import PersistResult, StoreOutcome, persist_user, resolve_user

__all__ = ["PersistResult", "StoreOutcome", "persist_user", "resolve_user"]
