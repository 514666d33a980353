from typing import Any, Dict, Mapping, Optional

from mpesa_gateway.errors import AuthError, ConflictError, ProviderError, ValidationError
from mpesa_gateway.models.payment import (
    PaymentRequest,
    PhoneCheck,
    PollResult,
    PushResult,
    PushState,
)
from mpesa_gateway.providers import PaymentGateway
from mpesa_gateway.providers.credentials import load_credentials, validate
from mpesa_gateway.providers.token_client import DEFAULT_TIMEOUT, TokenClient
from mpesa_gateway.services.idempotency_service import QUEUED, IdempotencyService
from mpesa_gateway.utils.logger import get_logger
from mpesa_gateway.utils.validators import normalize_phone

logger = get_logger(__name__)


class PaymentService:
    """Caller-facing STK push API over an injected gateway"""

    def __init__(self, gateway: PaymentGateway, idempotency_ttl: int = IdempotencyService.DEFAULT_TTL):
        self.gateway = gateway
        self.idempotency_ttl = idempotency_ttl

    def initiate_push(
            self,
            order_id: str,
            amount: Any,
            phone: str,
            account_reference: Optional[str] = None,
            description: Optional[str] = None
    ) -> PushResult:
        """
        Send an STK push for an order

        The order id is claimed in Redis (SET NX) before the gateway is
        called, so at most one push per order is in flight. A queued push is
        remembered for the idempotency window together with the phone and
        amount it was sent for; repeating the call with the same details
        returns the first result and sends nothing. Declined or errored
        pushes release the claim so they can be retried.

        Args:
            order_id: Opaque order identifier
            amount: Amount in whole KES (rounded before sending)
            phone: Customer phone in any local or international format
            account_reference: Shown on the customer's phone (default: order id)
            description: Transaction description (default: "Order <id>")

        Returns:
            PushResult

        Raises:
            ValidationError: bad input, or the order already has a push with
                a different phone or amount
            ConflictError: the first push for this order is still in flight
        """
        request = PaymentRequest(
            order_id=order_id,
            amount=amount,
            customer_phone=phone,
            account_reference=account_reference,
            description=description,
        )
        e164, rounded = PaymentGateway.prepare(request)
        fingerprint = IdempotencyService.fingerprint(e164, rounded)

        cached = self._claim(order_id, fingerprint)
        if cached is not None:
            logger.info('Order %s already has a queued push %s; not resending', order_id, cached.correlation_id)
            return cached

        try:
            result = self.gateway.initiate(request)
        except Exception:
            IdempotencyService.delete_cached_result(order_id)
            raise

        if result.state is PushState.QUEUED:
            IdempotencyService.cache_result(order_id, result, fingerprint, ttl=self.idempotency_ttl)
        else:
            IdempotencyService.delete_cached_result(order_id)

        return result

    def _claim(self, order_id: str, fingerprint: Dict[str, Any]) -> Optional[PushResult]:
        """
        Reserve the order for this caller

        Returns:
            None when the caller owns the push, else the queued result to reuse
        """
        # A second attempt covers a claim released between SET NX and GET
        for _ in range(2):
            if IdempotencyService.claim(order_id, fingerprint, ttl=self.idempotency_ttl):
                return None

            record = IdempotencyService.get_record(order_id)
            if record is None:
                continue

            if record.get('fingerprint') != fingerprint:
                raise ValidationError('Order already has a pending push with different details')
            if record.get('status') == QUEUED:
                return record['result']
            break

        raise ConflictError(f'A push for order {order_id} is already in progress')

    def query_push_status(self, correlation_id: str) -> PollResult:
        """Single-shot status query; callers own the polling loop"""
        return self.gateway.poll(correlation_id)

    @staticmethod
    def normalize_phone(raw: str) -> PhoneCheck:
        return normalize_phone(raw)

    @staticmethod
    def check_connection(settings: Mapping[str, Any], session=None) -> Dict[str, Any]:
        """
        Check configuration and the OAuth handshake without sending a push

        Returns:
            Dict with success, message, environment and, when the
            configuration is incomplete, missing_fields
        """
        if str(settings.get('MPESA_SIMULATE', '')).lower() in ('1', 'true', 'yes', 'on'):
            return {
                'success': True,
                'message': 'Using simulated M-Pesa gateway (no network calls)',
                'environment': 'simulated',
            }

        credentials = load_credentials(settings)
        check = validate(credentials)
        if not check.valid:
            return {
                'success': False,
                'message': f"Configuration incomplete. Missing: {', '.join(check.missing)}",
                'environment': credentials.environment,
                'missing_fields': list(check.missing),
            }

        try:
            TokenClient(
                credentials,
                session=session,
                timeout=float(settings.get('MPESA_TIMEOUT', DEFAULT_TIMEOUT)),
            ).get_access_token()
        except (AuthError, ProviderError) as e:
            logger.error("Daraja connection check failed: %s", e.message)
            return {
                'success': False,
                'message': e.message,
                'environment': credentials.environment,
            }

        return {
            'success': True,
            'message': f'Connected to Daraja {credentials.environment.upper()} environment',
            'environment': credentials.environment,
            'short_code': credentials.short_code,
        }
