class SyncError(Exception):
    """Erreur de synchro remontée telle quelle à l'appelant."""


class ConfigurationError(SyncError):
    """URL ou colonnes manquantes."""


class TransportError(SyncError):
    """Erreur réseau, timeout ou réponse HTTP != 200."""


class DataError(SyncError):
    """Flux vide ou illisible."""


class RowError(SyncError):
    """Échec isolé sur une ligne du flux (jamais fatal pour le run)."""
