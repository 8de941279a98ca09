# stocksync/services/options.py

from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from stocksync.db.session import SessionFactory
from stocksync.models import Option, SyncSettings, now_utc


class OptionStore:
    """
    Valeurs JSON nommées, avec expiration optionnelle.
    Une valeur expirée est traitée comme absente.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, name: str, default: Any = None) -> Any:
        with self._session_factory() as session:
            opt = session.get(Option, name)
        if opt is None or self._expired(opt):
            return default
        return opt.value

    def set(self, name: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        expires_at = now_utc() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        with self._session_factory() as session:
            opt = session.get(Option, name)
            if opt is None:
                opt = Option(name=name)
            opt.value = value
            opt.expires_at = expires_at
            opt.updated_at = now_utc()
            session.add(opt)
            session.commit()

    def add(self, name: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """
        Écrit la valeur seulement si elle est absente (ou expirée). Retourne True si écrite.
        Une insertion concurrente de la même clé (IntegrityError) compte comme « déjà présente ».
        """
        expires_at = now_utc() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        try:
            with self._session_factory() as session:
                opt = session.get(Option, name)
                if opt is None:
                    session.add(Option(name=name, value=value, expires_at=expires_at))
                    session.commit()
                    return True

                if not self._expired(opt):
                    return False

                # reprise d'une valeur expirée : un seul process gagne
                result = session.execute(
                    update(Option)
                    .where(Option.name == name, Option.expires_at == opt.expires_at)
                    .values(value=value, expires_at=expires_at, updated_at=now_utc())
                )
                session.commit()
                return result.rowcount == 1
        except IntegrityError:
            return False

    def delete(self, name: str, expected: Any = None) -> bool:
        """
        Supprime la clé. Avec `expected`, seulement si la valeur stockée est identique.
        Retourne True si une ligne a été supprimée.
        """
        with self._session_factory() as session:
            opt = session.get(Option, name)
            if opt is None:
                return False
            if expected is not None and opt.value != expected:
                return False
            session.delete(opt)
            session.commit()
        return True

    @staticmethod
    def _expired(opt: Option) -> bool:
        return opt.expires_at is not None and opt.expires_at <= now_utc()


class SettingsStore:
    """Réglages de la synchro, persistés dans l'option `sync_settings`."""

    OPTION_NAME = "sync_settings"

    def __init__(self, options: OptionStore) -> None:
        self.options = options

    def load(self) -> SyncSettings:
        return SyncSettings.model_validate(self.options.get(self.OPTION_NAME) or {})

    def save(self, settings: SyncSettings) -> None:
        self.options.set(self.OPTION_NAME, settings.model_dump())
