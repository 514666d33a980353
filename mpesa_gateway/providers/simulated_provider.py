"""
Offline stand-in for the Daraja gateway, for local development.

Selected by configuration (MPESA_SIMULATE), never by an inline branch in
the live gateway. Checkout ids carry the SIM_ prefix so they can always be
told apart from real ones.
"""

import random
import uuid
from typing import Optional

from mpesa_gateway.errors import ProviderError, ValidationError
from mpesa_gateway.models.payment import PaymentRequest, PollResult, PushResult, PushState
from mpesa_gateway.providers.base import SIMULATED_PREFIX, PaymentGateway, is_simulated
from mpesa_gateway.providers.daraja_provider import map_result_code
from mpesa_gateway.providers.result_codes import SUCCESS, USER_CANCELLED
from mpesa_gateway.utils.logger import get_logger
from mpesa_gateway.utils.validators import mask_phone

logger = get_logger(__name__)

DEFAULT_SUCCESS_RATE = 0.7


class SimulatedGateway(PaymentGateway):
    """Queues every valid push and settles polls at random."""

    name = 'simulated'

    def __init__(self, rng: Optional[random.Random] = None, success_rate: float = DEFAULT_SUCCESS_RATE):
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError(f"success_rate must be between 0 and 1, got {success_rate}")
        self.rng = rng or random.Random()
        self.success_rate = success_rate

    def initiate(self, request: PaymentRequest) -> PushResult:
        phone, amount = self.prepare(request)
        suffix = uuid.UUID(int=self.rng.getrandbits(128)).hex

        logger.info(
            "Simulated STK push for order %s: phone %s, amount %s",
            request.order_id, mask_phone(phone), amount,
        )
        return PushResult(
            state=PushState.QUEUED,
            correlation_id=f"{SIMULATED_PREFIX}{suffix}",
            secondary_id=f"MER_{suffix}",
            message="Simulated STK Push - Check your phone for payment prompt",
            raw_response_code=SUCCESS,
            raw_response_description="Simulated request accepted for processing",
        )

    def poll(self, correlation_id: str) -> PollResult:
        if not correlation_id:
            raise ValidationError('correlation_id is required')
        if not is_simulated(correlation_id):
            raise ProviderError(
                f"Simulated gateway cannot query non-simulated checkout id {correlation_id}"
            )

        code = SUCCESS if self.rng.random() < self.success_rate else USER_CANCELLED
        result = map_result_code(code)
        logger.info("Simulated STK query %s: %s", correlation_id, result.state.value)
        return result


class RoutingGateway(PaymentGateway):
    """
    Live gateway that hands SIM_ checkout ids to the simulated one.

    Ids issued while simulation was switched on stay pollable after it is
    switched off.
    """

    def __init__(self, primary: PaymentGateway, simulated: Optional[SimulatedGateway] = None):
        self.primary = primary
        self.simulated = simulated or SimulatedGateway()
        self.name = primary.name

    def initiate(self, request: PaymentRequest) -> PushResult:
        return self.primary.initiate(request)

    def poll(self, correlation_id: str) -> PollResult:
        if is_simulated(correlation_id):
            return self.simulated.poll(correlation_id)
        return self.primary.poll(correlation_id)
