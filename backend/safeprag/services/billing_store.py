"""
SafePrag - Cache Local de Assinaturas

Arquivo JSON plano, chaveado por companyId:

    {"<companyId>": {"active": true, "status": "active", "updatedAt": "...",
                     "customerId": "...", "priceId": "...", "productId": "...",
                     "activePriceIds": [...], "activeProductIds": [...]}}

Escrita atômica (arquivo temporário + replace) sob lock do processo.
Eventos concorrentes para a mesma empresa: vence a última escrita.
"""
import json
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from safeprag.core.config import settings
from safeprag.core.logging_config import get_logger
from safeprag.models.schemas import BillingRecord

log = get_logger(__name__)


def utc_iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class BillingStore:
    """Leitura e escrita do cache de assinaturas."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Leitura
    # -------------------------------------------------------------------------

    def _read_raw(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            log.warning("billing_store_unreadable", path=str(self.path), error=str(e))
            return {}
        if not isinstance(raw, dict):
            log.warning("billing_store_invalid_format", path=str(self.path))
            return {}
        return raw

    def read_all(self) -> Dict[str, BillingRecord]:
        records = {}
        for company_id, raw in self._read_raw().items():
            try:
                records[company_id] = BillingRecord.model_validate(raw)
            except ValidationError as e:
                log.warning("billing_record_invalid", company_id=company_id, error=str(e))
        return records

    def get(self, company_id: str) -> Optional[BillingRecord]:
        raw = self._read_raw().get(company_id)
        if raw is None:
            return None
        try:
            return BillingRecord.model_validate(raw)
        except ValidationError as e:
            log.warning("billing_record_invalid", company_id=company_id, error=str(e))
            return None

    # -------------------------------------------------------------------------
    # Escrita
    # -------------------------------------------------------------------------

    def _write_raw(self, data: Dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".billing-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(data, tmp, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def upsert(
        self,
        company_id: str,
        *,
        active: Optional[bool] = None,
        status: Optional[str] = None,
        customer_id: Optional[str] = None,
        price_id: Optional[str] = None,
        product_id: Optional[str] = None,
        clear_plan: bool = False,
    ) -> BillingRecord:
        """
        Atualiza o registro da empresa e grava o arquivo.

        Campos None preservam o valor anterior. Price/product informados
        entram também nas listas activePriceIds/activeProductIds (sem
        duplicar). clear_plan remove priceId/productId atuais (assinatura
        cancelada ou inadimplente) e mantém o histórico das listas.
        """
        with self._lock:
            data = self._read_raw()
            current = data.get(company_id) or {}
            try:
                record = BillingRecord.model_validate(current)
            except ValidationError:
                record = BillingRecord()

            changes = {"updated_at": utc_iso_now()}
            if active is not None:
                changes["active"] = active
            if status is not None:
                changes["status"] = status
            if clear_plan:
                changes["price_id"] = None
                changes["product_id"] = None
            if customer_id:
                changes["customer_id"] = customer_id
            if price_id:
                changes["price_id"] = price_id
                if price_id not in record.active_price_ids:
                    changes["active_price_ids"] = record.active_price_ids + [price_id]
            if product_id:
                changes["product_id"] = product_id
                if product_id not in record.active_product_ids:
                    changes["active_product_ids"] = record.active_product_ids + [product_id]

            record = record.model_copy(update=changes)
            data[company_id] = record.model_dump(by_alias=True)
            self._write_raw(data)

        log.info(
            "billing_record_updated",
            company_id=company_id,
            active=record.active,
            status=record.status,
        )
        return record


_stores: Dict[str, BillingStore] = {}


def get_billing_store() -> BillingStore:
    """Uma instância (e um lock) por caminho de arquivo."""
    path = settings.BILLING_STORE_PATH
    store = _stores.get(path)
    if store is None:
        store = _stores[path] = BillingStore(path)
    return store
