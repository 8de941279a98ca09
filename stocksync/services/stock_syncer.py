# stocksync/services/stock_syncer.py

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from stocksync.errors import ConfigurationError, DataError, RowError, SyncError, TransportError
from stocksync.models import SyncSettings
from stocksync.services.catalog import CatalogEntry, CatalogStore
from stocksync.services.csv_parser import FeedRow, parse_csv
from stocksync.services.feed_client import SYNC_TIMEOUT, TEST_TIMEOUT, FeedClient
from stocksync.services.run_logger import RunLogger

OUTCOME_UPDATED = "updated"
OUTCOME_SKIPPED = "skipped"
OUTCOME_NOT_FOUND = "not_found"
OUTCOME_ERROR = "error"

_NUMERIC_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


@dataclass
class SyncResult:
    success: bool
    message: str
    stats: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.stats is not None:
            data["stats"] = self.stats
        return data


@dataclass
class SyncStats:
    total_rows: int = 0
    counts: Dict[str, int] = field(default_factory=lambda: {
        OUTCOME_UPDATED: 0,
        OUTCOME_SKIPPED: 0,
        OUTCOME_NOT_FOUND: 0,
        OUTCOME_ERROR: 0,
    })

    def add(self, outcome: str) -> None:
        self.counts[outcome] += 1

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_rows": self.total_rows,
            "updated_count": self.counts[OUTCOME_UPDATED],
            "skipped_count": self.counts[OUTCOME_SKIPPED],
            "not_found_count": self.counts[OUTCOME_NOT_FOUND],
            "error_count": self.counts[OUTCOME_ERROR],
        }


def is_numeric(value: str) -> bool:
    return bool(_NUMERIC_RE.match(value or ""))


def to_quantity(value: str) -> int:
    # "5.9" -> 5, "1e3" -> 1000 (troncature vers zéro)
    return int(Decimal(value))


def normalize_headers(header: FeedRow) -> List[str]:
    return [h.strip().lstrip("\ufeff").strip().lower() for h in header]


def find_column(headers: List[str], name: str) -> Optional[int]:
    """Index de la première colonne dont le nom correspond (insensible à la casse)."""
    wanted = (name or "").strip().lower()
    for idx, h in enumerate(headers):
        if h == wanted:
            return idx
    return None


class StockSyncer:
    """
    Réconcilie les quantités du catalogue avec le flux CSV.

    Chaque ligne est traitée indépendamment : une ligne invalide ne fait
    jamais échouer le run. Une quantité identique n'entraîne aucune écriture,
    la synchro est donc idempotente.
    """

    def __init__(self, logger: RunLogger, catalog: CatalogStore, feed_client: Optional[FeedClient] = None) -> None:
        self.logger = logger
        self.catalog = catalog
        self.feed_client = feed_client or FeedClient()

    # ---------------------------------------------------------
    #  Synchro complète
    # ---------------------------------------------------------

    def sync(self, settings: SyncSettings) -> SyncResult:
        try:
            return self._sync(settings)
        except SyncError as e:
            self.logger.error(str(e))
            return SyncResult(success=False, message=str(e))

    def _sync(self, settings: SyncSettings) -> SyncResult:
        if not settings.csv_url:
            raise ConfigurationError("CSV URL is not configured.")

        self.logger.info(f"Fetching CSV from: {settings.csv_url}")
        body = self._fetch(
            settings,
            timeout=SYNC_TIMEOUT,
            transport_message="Failed to fetch CSV: {}",
            http_message="Failed to fetch CSV. HTTP response code: {}",
        )

        self.logger.info("CSV fetched successfully. Parsing content...")
        csv_data = parse_csv(body)
        if not csv_data:
            raise DataError("Failed to parse CSV or CSV is empty.")

        headers = normalize_headers(csv_data[0])
        rows = csv_data[1:]

        sku_index, quantity_index = self._resolve_columns(headers, settings)

        self.logger.info(
            'Found columns - SKU: "%s" (index %d), Quantity: "%s" (index %d)'
            % (settings.sku_column, sku_index, settings.quantity_column, quantity_index)
        )

        stats = SyncStats(total_rows=len(rows))
        self.logger.info(f"Processing {stats.total_rows} rows from CSV...")

        for row in rows:
            stats.add(self._reconcile_row(row, sku_index, quantity_index))

        summary = stats.to_dict()
        self.logger.info(
            "Sync summary - Total: %d, Updated: %d, Skipped: %d, Not found: %d, Errors: %d" % (
                summary["total_rows"],
                summary["updated_count"],
                summary["skipped_count"],
                summary["not_found_count"],
                summary["error_count"],
            ),
            summary,
        )

        message = "Stock sync completed. Updated: %d products, Skipped: %d, Not found: %d, Errors: %d" % (
            summary["updated_count"],
            summary["skipped_count"],
            summary["not_found_count"],
            summary["error_count"],
        )
        return SyncResult(success=True, message=message, stats=summary)

    def _fetch(self, settings: SyncSettings, timeout: int, transport_message: str, http_message: str) -> str:
        try:
            resp = self.feed_client.get(settings.csv_url, timeout=timeout, verify_tls=settings.ssl_verify)
        except TransportError as e:
            raise TransportError(transport_message.format(e)) from e

        if resp.status_code != 200:
            raise TransportError(http_message.format(resp.status_code))

        if not resp.body:
            raise DataError("CSV content is empty.")

        return resp.body

    def _resolve_columns(self, headers: List[str], settings: SyncSettings) -> Tuple[int, int]:
        sku_index = find_column(headers, settings.sku_column)
        if sku_index is None:
            raise ConfigurationError(
                'SKU column "%s" not found in CSV. Available columns: %s'
                % (settings.sku_column, ", ".join(headers))
            )

        quantity_index = find_column(headers, settings.quantity_column)
        if quantity_index is None:
            raise ConfigurationError(
                'Quantity column "%s" not found in CSV. Available columns: %s'
                % (settings.quantity_column, ", ".join(headers))
            )

        return sku_index, quantity_index

    # ---------------------------------------------------------
    #  Décision par ligne
    # ---------------------------------------------------------

    def _reconcile_row(self, row: FeedRow, sku_index: int, quantity_index: int) -> str:
        if len(row) <= sku_index:
            return OUTCOME_SKIPPED

        sku = row[sku_index].strip()
        if not sku:
            return OUTCOME_SKIPPED

        raw_quantity = row[quantity_index].strip() if len(row) > quantity_index else ""
        if not is_numeric(raw_quantity):
            self.logger.warning(
                f'Invalid quantity "{raw_quantity}" for SKU "{sku}". Skipping.',
                {"sku": sku, "value": raw_quantity},
            )
            return OUTCOME_SKIPPED

        quantity = to_quantity(raw_quantity)

        try:
            product_id = self.catalog.find_id_by_sku(sku)
            if not product_id:
                self.logger.warning(f"Product not found for SKU: {sku}", {"sku": sku})
                return OUTCOME_NOT_FOUND

            entry = self.catalog.load(product_id)
        except SQLAlchemyError as e:
            self.logger.error(f'Catalog lookup failed for SKU "{sku}": {e}', {"sku": sku})
            return OUTCOME_ERROR

        if entry is None:
            self.logger.warning(
                f"Could not load product for ID: {product_id} (SKU: {sku})",
                {"sku": sku, "product_id": product_id},
            )
            return OUTCOME_ERROR

        current = entry.get_quantity()
        if current == quantity:
            return OUTCOME_SKIPPED

        try:
            self._apply_update(entry, quantity)
        except RowError as e:
            self.logger.error(
                f'Failed to update stock for SKU "{sku}": {e}',
                {"sku": sku, "product_id": entry.id, "exception": str(e)},
            )
            return OUTCOME_ERROR

        self.logger.info(
            'Updated stock for SKU "%s" (ID: %d): %s → %d'
            % (sku, entry.id, current if current is not None else "null", quantity),
            {"sku": sku, "product_id": entry.id, "before": current, "after": quantity},
        )
        return OUTCOME_UPDATED

    @staticmethod
    def _apply_update(entry: CatalogEntry, quantity: int) -> None:
        try:
            if not entry.is_tracking_enabled():
                entry.set_tracking_enabled(True)
            entry.set_quantity(quantity)
            entry.save()
        except Exception as e:
            raise RowError(str(e)) from e

    # ---------------------------------------------------------
    #  Test de connexion (lecture seule)
    # ---------------------------------------------------------

    def test_connection(self, settings: SyncSettings) -> SyncResult:
        if not settings.csv_url:
            return SyncResult(success=False, message="CSV URL is not configured.")

        try:
            body = self._fetch(
                settings,
                timeout=TEST_TIMEOUT,
                transport_message="Failed to connect: {}",
                http_message="HTTP Error: {}",
            )
        except SyncError as e:
            return SyncResult(success=False, message=str(e))

        csv_data = parse_csv(body)
        if not csv_data:
            return SyncResult(success=False, message="Failed to parse CSV or CSV is empty.")

        headers = [h.strip().lstrip("\ufeff").strip() for h in csv_data[0]]
        headers_lower = [h.lower() for h in headers]
        available = ", ".join(headers)

        sku_found = find_column(headers_lower, settings.sku_column) is not None
        quantity_found = find_column(headers_lower, settings.quantity_column) is not None
        row_count = len(csv_data) - 1

        if not sku_found and not quantity_found:
            return SyncResult(
                success=False,
                message='Neither SKU column "%s" nor Quantity column "%s" found. Available columns: %s'
                % (settings.sku_column, settings.quantity_column, available),
            )

        if not sku_found:
            return SyncResult(
                success=False,
                message='SKU column "%s" not found. Available columns: %s' % (settings.sku_column, available),
            )

        if not quantity_found:
            return SyncResult(
                success=False,
                message='Quantity column "%s" not found. Available columns: %s'
                % (settings.quantity_column, available),
            )

        return SyncResult(
            success=True,
            message="Connection successful! Found %d rows with columns: %s" % (row_count, available),
        )
