"""
Redis-based store for tracking delegated deposit progress per wallet.
Stages: detected -> submitting -> confirmed, or error.
"""

import json
import logging
import time
from typing import Any, Dict, Optional

from django.conf import settings
from redis import Redis

from stakepool.apps.ledger.errors import LedgerError

logger = logging.getLogger(__name__)

KEY_PREFIX = "pool:deposit:status:"
TTL = 30 * 60  # 30 minutes


class DepositStatusStore:
    """Store for tracking deposit status and ledger confirmation."""

    def __init__(self, redis_client: Optional[Redis] = None, service=None):
        self.redis = redis_client or Redis.from_url(
            getattr(settings, "CELERY_BROKER_URL", "redis://redis:6379/0")
        )
        self._service = service

    def _key(self, wallet: str) -> str:
        return f"{KEY_PREFIX}{wallet}"

    def _load(self, wallet: str) -> Optional[Dict[str, Any]]:
        raw = self.redis.get(self._key(wallet))
        if not raw:
            return None
        return json.loads(raw)

    def _save(self, wallet: str, data: Dict[str, Any]) -> None:
        data["updated_at"] = int(time.time())
        self.redis.setex(self._key(wallet), TTL, json.dumps(data))

    def create(self, wallet: str, token_account: str, amount: int) -> None:
        """Start tracking a detected delegation."""
        now = int(time.time())
        data = {
            "wallet": wallet,
            "token_account": token_account,
            "amount": amount,
            "status": "pending",
            "stage": "detected",
            "tx_signature": None,
            "tx_status": None,
            "created_at": now,
            "updated_at": now,
            "error": None,
        }
        self.redis.setex(self._key(wallet), TTL, json.dumps(data))

    def update_stage(self, wallet: str, stage: str, **kwargs) -> None:
        data = self._load(wallet)
        if data is None:
            return
        data["stage"] = stage
        data.update(kwargs)
        self._save(wallet, data)

    def set_submitting(self, wallet: str) -> None:
        self.update_stage(wallet, "submitting")

    def set_unconfirmed(self, wallet: str, signature: str) -> None:
        """Sent but not confirmed in time; get() keeps polling the signature."""
        self.update_stage(wallet, "submitting", tx_signature=signature, tx_status="pending")

    def set_success(self, wallet: str, result: Dict[str, Any]) -> None:
        data = self._load(wallet)
        if data is None:
            return
        data.update(
            {
                "status": "success",
                "stage": "confirmed",
                "tx_status": "confirmed",
            }
        )
        data.update(result)
        self._save(wallet, data)

    def set_error(self, wallet: str, error: str) -> None:
        data = self._load(wallet)
        if data is None:
            return
        data.update({"status": "error", "stage": "error", "error": error})
        self._save(wallet, data)

    def get(self, wallet: str) -> Optional[Dict[str, Any]]:
        data = self._load(wallet)
        if data is None:
            return None

        if data.get("tx_signature") and data.get("tx_status") == "pending":
            data["tx_status"] = self._check_tx_status(data["tx_signature"])
        return data

    def _check_tx_status(self, signature: str) -> str:
        """
        Check whether a signature landed.
        Returns 'pending', 'confirmed', or 'failed'.
        """
        try:
            if self._service is None:
                from stakepool.apps.ledger.services.voucher_pool import VoucherPoolService

                self._service = VoucherPoolService()
            status = self._service.get_transaction_status(signature)["status"]
        except (LedgerError, ValueError) as e:
            logger.warning(f"Could not check {signature}: {e}")
            return "pending"
        if status == "not_found":
            return "pending"
        return status
