from abc import ABC, abstractmethod
from typing import Tuple

from mpesa_gateway.errors import ValidationError
from mpesa_gateway.models.payment import PaymentRequest, PollResult, PushResult
from mpesa_gateway.utils.validators import normalize_phone, round_amount, validate_amount

SIMULATED_PREFIX = 'SIM_'


def is_simulated(correlation_id: str) -> bool:
    return isinstance(correlation_id, str) and correlation_id.startswith(SIMULATED_PREFIX)


class PaymentGateway(ABC):
    """Push initiator and status poller for one STK push provider"""

    name = 'gateway'

    @abstractmethod
    def initiate(self, request: PaymentRequest) -> PushResult:
        """
        Send an STK push prompt to the customer's phone

        Args:
            request: Order id, amount, raw customer phone and optional labels

        Returns:
            PushResult with state QUEUED and a correlation id, or FAILED with
            a translated message when the provider declined the request

        Raises:
            ValidationError: bad phone or amount, before any network call
            AuthError: token exchange failed
            ProviderError: transport failure or unparseable response
        """
        pass

    @abstractmethod
    def poll(self, correlation_id: str) -> PollResult:
        """
        Query the outcome of a previously initiated push. Idempotent.

        Args:
            correlation_id: Checkout request id returned by initiate()

        Returns:
            PollResult in PROCESSING, SUCCEEDED or FAILED state
        """
        pass

    @staticmethod
    def prepare(request: PaymentRequest) -> Tuple[str, int]:
        """
        Normalize the phone and round the amount.

        Raises:
            ValidationError before anything is sent
        """
        if not request.order_id or not str(request.order_id).strip():
            raise ValidationError('order_id is required')

        is_valid, error = validate_amount(request.amount)
        if not is_valid:
            raise ValidationError(error)

        phone = normalize_phone(request.customer_phone)
        if not phone.ok:
            raise ValidationError(phone.reason)

        return phone.e164, round_amount(request.amount)
