from .product import Product, ProductCreate, ProductRead, now_utc
from .option import Option
from .settings import CUSTOM_SCHEDULE, SCHEDULE_KEYS, SyncSettings, SyncSettingsUpdate, clamp_custom_interval
from .sync_log import SyncLog, SyncLogRead, SyncRunSummary
from .sync_run import SyncRun
from .types import UtcDateTime

__all__ = [
    "Product", "ProductCreate", "ProductRead", "now_utc",
    "Option",
    "CUSTOM_SCHEDULE", "SCHEDULE_KEYS", "SyncSettings", "SyncSettingsUpdate", "clamp_custom_interval",
    "SyncLog", "SyncLogRead", "SyncRunSummary",
    "SyncRun",
    "UtcDateTime",
]
