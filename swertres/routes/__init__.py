from . import claims, draws, ping, tickets

__all__ = ["claims", "draws", "ping", "tickets"]
