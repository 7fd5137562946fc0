from kubepane.models.connection_profile import ConnectionProfile

__all__ = ["ConnectionProfile"]
