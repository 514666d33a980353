import json
from typing import Any, Dict, Optional

from mpesa_gateway.extensions import redis_client
from mpesa_gateway.models.payment import PushResult
from mpesa_gateway.schemas.payment_schema import PushResultSchema

_push_result_schema = PushResultSchema()

PENDING = 'pending'
QUEUED = 'queued'


class IdempotencyService:
    """Remember STK pushes per order id using Redis"""

    DEFAULT_TTL = 300  # 5 minutes, longer than an unanswered STK prompt lives

    @staticmethod
    def enabled() -> bool:
        return redis_client.client is not None

    @staticmethod
    def get_key(order_id: str) -> str:
        """Generate Redis key for an order's push"""
        return f'stkpush:{order_id}'

    @staticmethod
    def fingerprint(phone: str, amount: int) -> Dict[str, Any]:
        """What a repeat call must match to be treated as the same push"""
        return {'phone': phone, 'amount': amount}

    @staticmethod
    def claim(order_id: str, fingerprint: Dict[str, Any], ttl: int = DEFAULT_TTL) -> bool:
        """
        Atomically reserve the order for one push (SET NX)

        Returns:
            True when this caller owns the push, False when a record exists
        """
        if not IdempotencyService.enabled():
            return True
        record = {'status': PENDING, 'fingerprint': fingerprint}
        key = IdempotencyService.get_key(order_id)
        return bool(redis_client.set(key, json.dumps(record), ex=ttl, nx=True))

    @staticmethod
    def get_record(order_id: str) -> Optional[Dict[str, Any]]:
        """Raw record: status, fingerprint and, once queued, the result"""
        if not IdempotencyService.enabled():
            return None

        cached = redis_client.get(IdempotencyService.get_key(order_id))
        if not cached:
            return None
        record = json.loads(cached)
        if record.get('result') is not None:
            record['result'] = _push_result_schema.load(record['result'])
        return record

    @staticmethod
    def get_cached_result(order_id: str) -> Optional[PushResult]:
        """Queued push previously sent for this order, if any"""
        record = IdempotencyService.get_record(order_id)
        if record and record.get('status') == QUEUED:
            return record['result']
        return None

    @staticmethod
    def cache_result(
            order_id: str,
            result: PushResult,
            fingerprint: Optional[Dict[str, Any]] = None,
            ttl: int = DEFAULT_TTL
    ):
        """Replace the claim with the queued push so a repeat call does not charge twice"""
        if not IdempotencyService.enabled():
            return
        record = {
            'status': QUEUED,
            'fingerprint': fingerprint,
            'result': _push_result_schema.dump(result),
        }
        redis_client.set(IdempotencyService.get_key(order_id), json.dumps(record), ex=ttl)

    @staticmethod
    def delete_cached_result(order_id: str):
        """Forget an order's push or claim, allowing a new one"""
        if not IdempotencyService.enabled():
            return
        redis_client.delete(IdempotencyService.get_key(order_id))
