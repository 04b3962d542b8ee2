"""
CLI: Airtable -> snapshot del portfolio (una corrida).

Uso recomendado:
  - Ejecutar como job (cron/systemd timer, GitHub Actions).
  - Comparte el lease con el API si ambos usan el mismo SNAPSHOT_DIR.

Variables de entorno requeridas:
  - AIRTABLE_TOKEN
  - AIRTABLE_BASE_ID

Ejecución:
  python scripts/portfolio_sync.py
  python scripts/portfolio_sync.py --force
  python scripts/portfolio_sync.py --snapshot-dir ./data

Códigos de salida:
  0 = OK (incluye fallback a cache por rate limit)
  1 = fallo
  2 = otra corrida tiene el lease
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger
from dotenv import load_dotenv

# Permite ejecutar este script desde cualquier cwd sin configurar PYTHONPATH.
# La carpeta "api" contiene el paquete raíz `app/`.
_API_ROOT = Path(__file__).resolve().parents[1]
if str(_API_ROOT) not in sys.path:
    sys.path.insert(0, str(_API_ROOT))

# api/.env primero, luego el .env del repo
load_dotenv(_API_ROOT / ".env", override=False)
load_dotenv(_API_ROOT.parent / ".env", override=False)

from app.core.config import Settings
from app.infrastructure.external.portfolio_sync.sync_config import PortfolioSyncConfig
from app.infrastructure.external.portfolio_sync.sync_service import build_from_config, build_snapshot_store
from app.shared.exceptions.sync import SyncException, SyncInProgressError


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_LOCKED = 2


async def _run(force: bool, snapshot_dir: str | None) -> int:
    settings = Settings()
    store = build_snapshot_store("file", snapshot_dir or settings.SNAPSHOT_DIR)
    service = build_from_config(PortfolioSyncConfig.from_settings(settings), store=store)

    outcome = await service.run(force_full=force, owner="cli")
    stats = outcome.stats
    if outcome.stale:
        logger.warning(f"Rate limit: se mantiene el snapshot de {outcome.snapshot.last_updated.isoformat()}")
    logger.info(
        f"Modo={stats.mode.value} | llamadas API={stats.api_calls} (ahorradas {stats.api_calls_saved}) | "
        f"proyectos={len(outcome.snapshot.projects)} posts={len(outcome.snapshot.posts)} | "
        f"imágenes subidas={stats.images_uploaded} omitidas={stats.images_skipped} fallidas={stats.images_failed}"
    )
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Sync Airtable -> snapshot del portfolio")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Ignora el baseline y hace un full sync (reintenta imágenes fallidas).",
    )
    parser.add_argument(
        "--snapshot-dir",
        default=None,
        help="Directorio del snapshot y artefactos (default: SNAPSHOT_DIR).",
    )
    args = parser.parse_args(argv)

    try:
        return asyncio.run(_run(args.force, args.snapshot_dir))
    except SyncInProgressError as e:
        logger.warning(f"Sync omitido: {e.message}")
        return EXIT_LOCKED
    except SyncException as e:
        logger.error(f"Sync fallido [{e.error_code}]: {e.message}")
        return EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
