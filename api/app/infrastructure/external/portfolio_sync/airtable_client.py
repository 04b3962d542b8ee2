"""
Cliente mínimo de Airtable REST API (sin SDKs externos).

Requisitos cubiertos:
- requests
- paginación por offset
- timeout por request (nunca se queda colgado)
- 429 -> AirtableRateLimitError (error distinguible, el orquestador decide)
- lectura liviana de timestamps con proyección de campos (fields[])
- fetch por ids con filterByFormula (RECORD_ID())
- tablas opcionales: un fallo (no 429) se trata como tabla vacía
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Iterable, Optional
from urllib.parse import quote

import requests
from loguru import logger

from .types import (
    CLIENTS_TABLE,
    FESTIVALS_TABLE,
    JOURNAL_TABLE,
    SETTINGS_TABLE,
    AirtableRecord,
    RecordTimestamp,
)


# Tablas cuya ausencia no es fatal (contenido opcional del portfolio)
OPTIONAL_TABLES = frozenset(
    {"Awards", FESTIVALS_TABLE, SETTINGS_TABLE, JOURNAL_TABLE, "Clients", CLIENTS_TABLE}
)

# Airtable corta URLs largas; las fórmulas por id se parten en bloques
RECORD_ID_CHUNK_SIZE = 50


@dataclass(frozen=True)
class AirtableCredentials:
    token: str
    base_id: str


class AirtableApiError(RuntimeError):
    """Error de integración con Airtable."""

    is_rate_limit = False

    def __init__(self, message: str, *, status_code: Optional[int] = None, table: Optional[str] = None) -> None:
        self.status_code = status_code
        self.table = table
        super().__init__(message)


class AirtableRateLimitError(AirtableApiError):
    """Airtable respondió 429. Habilita el fallback a snapshot cacheado."""

    is_rate_limit = True

    def __init__(self, table: str, retry_after: Optional[float] = None) -> None:
        self.retry_after = retry_after
        super().__init__(f"Rate limit excedido para {table}", status_code=429, table=table)


class AirtableTimeoutError(AirtableApiError):
    """El request superó el timeout configurado."""


def build_record_id_formula(record_ids: list[str]) -> str:
    """
    Construye la fórmula para traer registros puntuales:

    - 1 id  -> RECORD_ID()='rec1'
    - N ids -> OR(RECORD_ID()='rec1',RECORD_ID()='rec2',...)
    """
    conditions = [f"RECORD_ID()='{rid}'" for rid in record_ids]
    if len(conditions) == 1:
        return conditions[0]
    return f"OR({','.join(conditions)})"


def _chunks(items: list[str], size: int) -> Iterable[list[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class AirtableClient:
    """
    Cliente HTTP de Airtable para el sync del portfolio.

    Importante:
    - No hace cast de tipos de campos: eso se decide en los schemas de registro.
    - Es síncrono (requests); el orquestador lo ejecuta en threads para
      paralelizar tablas independientes.
    """

    def __init__(
        self,
        credentials: AirtableCredentials,
        *,
        session: Optional[requests.Session] = None,
        base_url: str = "https://api.airtable.com/v0",
        timeout_s: float = 10.0,
        max_retries: int = 0,
        min_backoff_s: float = 0.8,
        max_backoff_s: float = 20.0,
        last_modified_field: str = "Last Modified",
        page_size: int = 100,
    ) -> None:
        self._creds = credentials
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._max_retries = max_retries
        self._min_backoff_s = min_backoff_s
        self._max_backoff_s = max_backoff_s
        self._last_modified_field = last_modified_field
        self._page_size = page_size
        self._session = session or requests.Session()
        self._request_count = 0
        self._count_lock = threading.Lock()

    @property
    def request_count(self) -> int:
        """Cantidad de requests HTTP emitidos (cada página cuenta)."""
        return self._request_count

    @property
    def last_modified_field(self) -> str:
        return self._last_modified_field

    def fetch_table(self, table_name: str, sort_field: Optional[str] = None) -> list[AirtableRecord]:
        """
        Trae todos los registros de una tabla, paginando hasta agotar el offset.

        Las tablas opcionales degradan a [] ante cualquier error que no sea 429.
        """
        query: list[tuple[str, Any]] = []
        if sort_field:
            query += [("sort[0][field]", sort_field), ("sort[0][direction]", "desc")]

        try:
            records = self._fetch_all(table_name, query)
        except AirtableRateLimitError:
            raise
        except AirtableApiError as e:
            if table_name in OPTIONAL_TABLES:
                logger.warning(f"Tabla opcional '{table_name}' no disponible ({e}); se trata como vacía")
                return []
            raise

        logger.info(f"Fetched {len(records)} registros de '{table_name}'")
        return records

    def fetch_timestamps(self, table_name: str) -> Optional[list[RecordTimestamp]]:
        """
        Lectura liviana: solo ids + campo "Last Modified".

        Retorna None si la lectura falla (el detector marca la tabla para
        resync completo). Una tabla opcional ausente cuenta como
        vacía. El 429 se propaga para habilitar el fallback.
        """
        query: list[tuple[str, Any]] = [("fields[]", self._last_modified_field)]
        try:
            records = self._fetch_all(table_name, query)
        except AirtableRateLimitError:
            raise
        except AirtableApiError as e:
            if table_name in OPTIONAL_TABLES:
                logger.warning(f"Tabla opcional '{table_name}' no disponible ({e}); sin timestamps")
                return []
            logger.warning(f"No se pudieron leer timestamps de '{table_name}': {e}")
            return None

        return [
            RecordTimestamp(
                record_id=r.record_id,
                last_modified=r.fields.get(self._last_modified_field),
            )
            for r in records
        ]

    def fetch_records_by_id(
        self,
        table_name: str,
        record_ids: list[str],
        sort_field: Optional[str] = None,
    ) -> list[AirtableRecord]:
        """Trae registros puntuales por id. Los errores se propagan siempre."""
        if not record_ids:
            return []

        records: list[AirtableRecord] = []
        for chunk in _chunks(list(record_ids), RECORD_ID_CHUNK_SIZE):
            query: list[tuple[str, Any]] = [("filterByFormula", build_record_id_formula(chunk))]
            if sort_field:
                query += [("sort[0][field]", sort_field), ("sort[0][direction]", "desc")]
            records.extend(self._fetch_all(table_name, query))

        logger.info(f"Fetched {len(records)} registros modificados de '{table_name}'")
        return records

    def _fetch_all(self, table_name: str, base_query: list[tuple[str, Any]]) -> list[AirtableRecord]:
        url = f"{self._base_url}/{self._creds.base_id}/{quote(table_name, safe='')}"
        offset: Optional[str] = None
        records: list[AirtableRecord] = []

        while True:
            query = [("pageSize", self._page_size), *base_query]
            if offset:
                query.append(("offset", offset))

            payload = self._request_json("GET", url, query=query, table_name=table_name)
            for rec in payload.get("records") or []:
                if not rec.get("id"):
                    raise AirtableApiError("Airtable devolvió un record sin 'id'", table=table_name)
                records.append(AirtableRecord.from_api(rec))

            offset = payload.get("offset")
            if not offset:
                return records

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        query: list[tuple[str, Any]],
        table_name: str,
    ) -> dict[str, Any]:
        """
        Request HTTP con timeout.

        Estrategia:
        - 429: AirtableRateLimitError inmediato (respeta Retry-After como dato).
        - 5xx: reintento con backoff exponencial solo si max_retries > 0.
        - 4xx (no 429): error inmediato (config/auth/tabla inexistente).
        """
        headers = {
            "Authorization": f"Bearer {self._creds.token}",
            "Content-Type": "application/json",
        }

        for attempt in range(self._max_retries + 1):
            with self._count_lock:
                self._request_count += 1
            try:
                resp = self._session.request(
                    method=method,
                    url=url,
                    params=query,
                    headers=headers,
                    timeout=self._timeout_s,
                )
            except requests.Timeout as e:
                raise AirtableTimeoutError(
                    f"Timeout ({self._timeout_s}s) consultando '{table_name}'", table=table_name
                ) from e
            except requests.RequestException as e:
                raise AirtableApiError(f"Error de red consultando '{table_name}': {e}", table=table_name) from e

            if 200 <= resp.status_code < 300:
                return resp.json()

            if resp.status_code == 429:
                raise AirtableRateLimitError(table_name, retry_after=_parse_retry_after(resp))

            if 500 <= resp.status_code < 600 and attempt < self._max_retries:
                base = min(self._max_backoff_s, self._min_backoff_s * (2**attempt))
                sleep_s = base + (0.15 * base)
                logger.warning(
                    f"Airtable {resp.status_code} en '{table_name}', reintento {attempt + 1} en {sleep_s:.1f}s"
                )
                time.sleep(sleep_s)
                continue

            raise AirtableApiError(
                f"Airtable request falló {resp.status_code} para '{table_name}': {resp.text}",
                status_code=resp.status_code,
                table=table_name,
            )

        # Inalcanzable: el último intento siempre retorna o lanza
        raise AirtableApiError(f"Airtable sin respuesta para '{table_name}'", table=table_name)


def _parse_retry_after(resp: requests.Response) -> Optional[float]:
    raw = resp.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None
