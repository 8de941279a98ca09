from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, TypeDecorator


class UtcDateTime(TypeDecorator):
    """
    Horodatage UTC, toujours avec fuseau côté Python.

    PostgreSQL : timestamptz. SQLite ne conserve pas le fuseau : la valeur
    est écrite en UTC sans fuseau puis relue comme UTC.
    Une valeur naïve reçue en écriture est considérée comme déjà en UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
