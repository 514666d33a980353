from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo

from flask import current_app

from mpesa_gateway.providers.base import PaymentGateway, is_simulated
from mpesa_gateway.providers.credentials import load_credentials
from mpesa_gateway.providers.daraja_provider import DarajaGateway
from mpesa_gateway.providers.signer import PROVIDER_TIMEZONE
from mpesa_gateway.providers.simulated_provider import RoutingGateway, SimulatedGateway
from mpesa_gateway.providers.token_client import DEFAULT_TIMEOUT


def get_gateway(settings: Optional[Mapping[str, Any]] = None) -> PaymentGateway:
    """
    Build the gateway selected by configuration.

    Args:
        settings: Mapping with MPESA_* keys; defaults to the Flask app config

    Returns:
        SimulatedGateway when MPESA_SIMULATE is on, otherwise the live Daraja
        gateway (which still routes SIM_ polls to the simulator)

    Raises:
        ConfigurationError: live mode with incomplete credentials
    """
    if settings is None:
        settings = current_app.config

    if _as_bool(settings.get('MPESA_SIMULATE', False)):
        return SimulatedGateway(success_rate=float(settings.get('MPESA_SIMULATE_SUCCESS_RATE', 0.7)))

    live = DarajaGateway(
        load_credentials(settings),
        timeout=float(settings.get('MPESA_TIMEOUT', DEFAULT_TIMEOUT)),
        tz=ZoneInfo(settings.get('MPESA_TIMEZONE') or PROVIDER_TIMEZONE),
    )
    return RoutingGateway(live)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


__all__ = ['get_gateway', 'PaymentGateway', 'DarajaGateway', 'SimulatedGateway', 'RoutingGateway', 'is_simulated']
