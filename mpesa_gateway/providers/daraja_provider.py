"""
M-Pesa STK Push Gateway
Based on the Safaricom Daraja API.

Flows
-----
STK Push (Lipa na M-Pesa Online)
    POST /mpesa/stkpush/v1/processrequest
    POST /mpesa/stkpushquery/v1/query         (status poll)

Authentication
    GET  /oauth/v1/generate?grant_type=client_credentials  (Basic auth)
    A fresh token is fetched for every initiate / poll call.

Callback
    Daraja POSTs Body.stkCallback to CallBackURL once the customer answers;
    parse_stk_callback() maps it with the same rules as poll().

Status mapping
--------------
The query response carries two independent codes:
    ResponseCode / errorCode: whether the query itself was handled
    ResultCode:               the financial outcome, once there is one

    ResultCode 0                       -> SUCCEEDED
    ResultCode 4999                    -> PROCESSING
    ResultCode anything else           -> FAILED (translated message)
    errorCode 500.001.1001             -> PROCESSING ("being processed")
    errorCode 500.003.02 / 500.003.03  -> ProviderError (throttled, retry poll)
    errorCode anything else            -> FAILED
    ResponseCode 0 without ResultCode  -> PROCESSING
    anything else                      -> FAILED, raw description kept
"""

from datetime import datetime, tzinfo
from typing import Any, Callable, Dict, Optional

import requests

from mpesa_gateway.errors import ProviderError, ValidationError
from mpesa_gateway.models.payment import (
    AccessToken,
    CallbackResult,
    PaymentRequest,
    PollResult,
    PollState,
    ProviderCredentials,
    PushResult,
    PushState,
    SignedEnvelope,
)
from mpesa_gateway.providers.base import PaymentGateway
from mpesa_gateway.providers.credentials import require_valid
from mpesa_gateway.providers.result_codes import (
    RESULT_CODE_MESSAGES,
    RETRYABLE_ERRORS,
    STILL_PROCESSING,
    STILL_PROCESSING_RESULT,
    SUCCESS,
    describe,
    is_cancellation,
    normalize_code,
)
from mpesa_gateway.providers.signer import sign
from mpesa_gateway.providers.token_client import DEFAULT_TIMEOUT, TokenClient
from mpesa_gateway.utils.logger import get_logger, redact
from mpesa_gateway.utils.validators import detect_network, mask_phone

logger = get_logger(__name__)

# Daraja field length limits
ACCOUNT_REFERENCE_MAX = 12
TRANSACTION_DESC_MAX = 13


def _first_present(data: Dict[str, Any], *keys: str) -> Optional[Any]:
    """First value that is neither None nor an empty string. 0 counts."""
    for key in keys:
        value = data.get(key)
        if value is not None and value != '':
            return value
    return None


def _message_for(code: str, description: Optional[str]) -> str:
    if code in RESULT_CODE_MESSAGES:
        return RESULT_CODE_MESSAGES[code]
    return description or describe(code)


def map_result_code(result_code: Any, result_desc: Optional[str] = None) -> PollResult:
    """Map an STK ResultCode (query or callback) to a PollResult."""
    code = normalize_code(result_code)

    if code == SUCCESS:
        state = PollState.SUCCEEDED
    elif code == STILL_PROCESSING_RESULT:
        state = PollState.PROCESSING
    else:
        state = PollState.FAILED

    return PollResult(
        state=state,
        message=_message_for(code, result_desc),
        raw_result_code=code,
        raw_result_description=result_desc,
    )


def map_query_response(data: Dict[str, Any]) -> PollResult:
    """
    Map an STK query response body to a PollResult.

    Raises:
        ProviderError when Daraja throttled the query (state unknown)
    """
    result_code = _first_present(data, 'ResultCode')
    if result_code is not None:
        return map_result_code(result_code, data.get('ResultDesc'))

    error_code = _first_present(data, 'errorCode')
    if error_code is not None:
        code = normalize_code(error_code)
        error_message = data.get('errorMessage')
        if code == STILL_PROCESSING:
            return PollResult(
                state=PollState.PROCESSING,
                message=describe(code),
                raw_result_code=code,
                raw_result_description=error_message,
            )
        if code in RETRYABLE_ERRORS:
            raise ProviderError(
                f'Daraja throttled the status query ({code}): {error_message}',
                body=data,
            )
        return PollResult(
            state=PollState.FAILED,
            message=_message_for(code, error_message),
            raw_result_code=code,
            raw_result_description=error_message,
        )

    response_code = normalize_code(_first_present(data, 'ResponseCode'))
    response_desc = data.get('ResponseDescription')
    if response_code == SUCCESS:
        return PollResult(
            state=PollState.PROCESSING,
            message='Payment is pending confirmation',
            raw_result_code=None,
            raw_result_description=response_desc,
        )

    return PollResult(
        state=PollState.FAILED,
        message=_message_for(response_code, response_desc),
        raw_result_code=response_code or None,
        raw_result_description=response_desc,
    )


def parse_stk_callback(payload: Dict[str, Any]) -> CallbackResult:
    """
    Parse the Body.stkCallback document Daraja POSTs to CallBackURL.

    Raises:
        ValidationError for payloads that are not STK callbacks
    """
    if not isinstance(payload, dict):
        raise ValidationError('Callback payload must be a JSON object')

    body = payload.get('Body')
    stk = body.get('stkCallback') if isinstance(body, dict) else None
    if not isinstance(stk, dict) or not stk.get('CheckoutRequestID'):
        raise ValidationError('Not an STK push callback: Body.stkCallback.CheckoutRequestID missing')

    if _first_present(stk, 'ResultCode') is None:
        raise ValidationError('STK push callback has no ResultCode')

    # CallbackMetadata items -> flat dict
    meta: Dict[str, Any] = {}
    metadata = stk.get('CallbackMetadata')
    items = metadata.get('Item', []) if isinstance(metadata, dict) else []
    for item in items:
        if isinstance(item, dict) and item.get('Name'):
            meta[item['Name']] = item.get('Value')

    phone = meta.get('PhoneNumber')
    transaction_date = meta.get('TransactionDate')

    return CallbackResult(
        correlation_id=stk['CheckoutRequestID'],
        secondary_id=stk.get('MerchantRequestID'),
        poll_result=map_result_code(stk.get('ResultCode'), stk.get('ResultDesc')),
        receipt_number=meta.get('MpesaReceiptNumber'),
        amount=meta.get('Amount'),
        phone_number=str(phone) if phone is not None else None,
        transaction_date=str(transaction_date) if transaction_date is not None else None,
        metadata=meta,
    )


class DarajaGateway(PaymentGateway):
    """M-Pesa (Daraja API) STK push gateway."""

    name = 'mpesa'

    _EP_STK_PUSH  = "/mpesa/stkpush/v1/processrequest"
    _EP_STK_QUERY = "/mpesa/stkpushquery/v1/query"

    def __init__(
        self,
        credentials: ProviderCredentials,
        session: Optional[requests.Session] = None,
        token_client: Optional[TokenClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
        tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.credentials = require_valid(credentials)
        self.timeout = timeout
        self.tz = tz
        self._clock = clock

        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

        self.token_client = token_client or TokenClient(
            self.credentials, session=self._session, timeout=timeout
        )

    # PaymentGateway

    def initiate(self, request: PaymentRequest) -> PushResult:
        phone, amount = self.prepare(request)
        logger.info(
            "STK push for order %s: phone %s (%s), amount %s",
            request.order_id, mask_phone(phone), detect_network(phone) or "Unknown network", amount,
        )

        token = self.token_client.get_access_token()
        envelope = self.build_envelope(request, phone, amount)
        data = self._post(self._EP_STK_PUSH, envelope.to_payload(), token, context="stk_push")

        return self._push_result(request.order_id, data)

    def poll(self, correlation_id: str) -> PollResult:
        if not correlation_id:
            raise ValidationError('correlation_id is required')

        token = self.token_client.get_access_token()
        timestamp, password = sign(self.credentials, now=self._now(), tz=self.tz)
        payload = {
            "BusinessShortCode": self.credentials.short_code,
            "Password":          password,
            "Timestamp":         timestamp,
            "CheckoutRequestID": correlation_id,
        }

        data = self._post(self._EP_STK_QUERY, payload, token, context="stk_query")
        result = map_query_response(data)

        if is_cancellation(result.raw_result_code):
            logger.info(
                "STK query %s: customer did not complete the prompt (code %s)",
                correlation_id, result.raw_result_code,
            )
        else:
            logger.info(
                "STK query %s: %s (code %s)",
                correlation_id, result.state.value, result.raw_result_code,
            )
        return result

    # Envelope

    def build_envelope(
        self,
        request: PaymentRequest,
        phone: str,
        amount: int,
    ) -> SignedEnvelope:
        """Signed STK push body with a timestamp taken now."""
        timestamp, password = sign(self.credentials, now=self._now(), tz=self.tz)
        account_reference = request.account_reference or str(request.order_id)
        description = request.description or f"Order {request.order_id}"

        return SignedEnvelope(
            short_code=self.credentials.short_code,
            password=password,
            timestamp=timestamp,
            transaction_type=self.credentials.transaction_type,
            amount=amount,
            party_a=phone,
            party_b=self.credentials.short_code,
            phone_number=phone,
            callback_url=self.credentials.callback_url,
            account_reference=account_reference[:ACCOUNT_REFERENCE_MAX],
            description=description[:TRANSACTION_DESC_MAX],
        )

    # Private

    def _now(self) -> Optional[datetime]:
        return self._clock() if self._clock else None

    def _push_result(self, order_id: str, data: Dict[str, Any]) -> PushResult:
        code = normalize_code(_first_present(data, "ResponseCode", "errorCode"))
        description = data.get("ResponseDescription") or data.get("errorMessage")

        if code == SUCCESS:
            checkout_id = data.get("CheckoutRequestID")
            if not checkout_id:
                raise ProviderError(
                    "Daraja accepted the STK push but returned no CheckoutRequestID",
                    body=redact(data),
                )
            logger.info("STK push queued for order %s: %s", order_id, checkout_id)
            return PushResult(
                state=PushState.QUEUED,
                correlation_id=checkout_id,
                secondary_id=data.get("MerchantRequestID"),
                message=data.get("CustomerMessage") or description,
                raw_response_code=code,
                raw_response_description=description,
            )

        message = _message_for(code, description)
        logger.warning("STK push declined for order %s: %s (%s)", order_id, message, code)
        return PushResult(
            state=PushState.FAILED,
            secondary_id=data.get("MerchantRequestID"),
            message=message,
            raw_response_code=code,
            raw_response_description=description,
        )

    def _post(
        self,
        endpoint: str,
        payload: Dict[str, Any],
        token: AccessToken,
        context: str = "",
    ) -> Dict[str, Any]:
        """
        Execute one bearer-authenticated POST to a Daraja endpoint.

        Returns the JSON body when it carries a provider code, even on
        non-2xx, so callers can map declines as data.
        """
        url = f"{self.credentials.api_base_url}{endpoint}"
        headers = {
            "Authorization": f"Bearer {token.value}",
            "Content-Type":  "application/json",
        }
        logger.debug("Daraja [%s] request: %s", context, redact(payload))

        try:
            resp = self._session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as exc:
            raise ProviderError(
                f"Daraja [{context}]: no response after {self.timeout}s", timeout=True
            ) from exc
        except requests.RequestException as exc:
            raise ProviderError(f"Daraja [{context}]: network error: {exc}") from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError(
                f"Daraja [{context}] HTTP {resp.status_code}: response is not JSON",
                provider_status=resp.status_code,
                body=resp.text[:300],
            ) from exc

        if not isinstance(data, dict):
            raise ProviderError(
                f"Daraja [{context}] HTTP {resp.status_code}: unexpected response shape",
                provider_status=resp.status_code,
                body=resp.text[:300],
            )

        logger.debug("Daraja [%s] HTTP %s: %s", context, resp.status_code, redact(data))

        has_code = _first_present(data, "ResponseCode", "ResultCode", "errorCode") is not None
        if not has_code:
            raise ProviderError(
                f"Daraja [{context}] HTTP {resp.status_code}: response carries no result code",
                provider_status=resp.status_code,
                body=redact(data),
            )

        return data
