import argparse
import logging
import os
import sys

# Permet d'importer "stocksync.*" quand on lance ce script directement
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from stocksync.context import build_context  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("stocksync.cli")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Synchro du stock depuis le flux CSV")
    parser.add_argument("--test", action="store_true", help="teste seulement l'URL et les colonnes")
    args = parser.parse_args(argv)

    ctx = build_context()

    if args.test:
        result = ctx.test_connection()
    else:
        logger.info("[CLI] Starting manual sync")
        result = ctx.scheduler.run_sync("manual")

    print(f"[SYNC] {'OK' if result.success else 'ÉCHEC'} – {result.message}")
    if result.stats:
        print(f"[SYNC] Stats: {result.stats}")

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
