# billing_api/gateways/factory.py
"""Build the adapter for a stored payment-provider configuration (a Service row)."""

from typing import Dict

from billing_api.gateways.base import PaymentGateway
from billing_api.gateways.mollie import MollieGateway, build_mollie_client
from billing_api.gateways.sumup import SumUpClient, SumUpGateway

# An OAuth authorization code can only be exchanged once, so SumUp clients
# (and the access and refresh tokens they hold) live as long as the process.
_sumup_clients: Dict[str, SumUpClient] = {}


class UnknownProvider(ValueError):
    pass


def _sumup_client(service: dict) -> SumUpClient:
    client = _sumup_clients.get(service["id"])
    if client is None:
        configuration = service.get("configuration") or {}
        client = SumUpClient(
            authorization=service["authorization"],
            app_id=configuration.get("app_id"),
            app_secret=configuration.get("app_secret"),
        )
        _sumup_clients[service["id"]] = client
    return client


def build_gateway(service: dict) -> PaymentGateway:
    provider = service["type"]

    if provider == "mollie":
        return MollieGateway(
            client=build_mollie_client(),
            service_id=service["id"],
            redirect_url=service.get("redirect_url"),
            api_key=service["authorization"],
        )

    if provider == "sumup":
        configuration = service.get("configuration") or {}
        return SumUpGateway(
            client=_sumup_client(service),
            service_id=service["id"],
            redirect_url=service.get("redirect_url"),
            pay_to_email=configuration.get("pay_to_email"),
        )

    raise UnknownProvider(f"No payment gateway for provider {provider!r}")


def get_gateway_factory():
    """FastAPI dependency; tests override it to hand out fake gateways."""
    return build_gateway
