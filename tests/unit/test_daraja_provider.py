"""
Unit Tests for the Daraja STK push gateway
All HTTP goes through gateway._session: .get for OAuth, .post for STK
endpoints. Patch those two attributes on the instance.
"""

from datetime import datetime
from itertools import count
from unittest.mock import patch

import pytest
import requests

from conftest import daraja_token_resp, mock_http_response, mock_text_response
from mpesa_gateway.errors import AuthError, ConfigurationError, ProviderError, ValidationError
from mpesa_gateway.models.payment import (
    PaymentRequest,
    PollResult,
    PollState,
    ProviderCredentials,
    PushState,
)
from mpesa_gateway.providers.daraja_provider import (
    DarajaGateway,
    map_query_response,
    parse_stk_callback,
)
from mpesa_gateway.providers.signer import derive_password


FIXED_NOW = datetime(2024, 1, 1, 12, 0, 0)


def _push_accepted(checkout_id="ws_CO_123"):
    return mock_http_response({
        "MerchantRequestID":   "mrq-001",
        "CheckoutRequestID":   checkout_id,
        "ResponseCode":        "0",
        "ResponseDescription": "Success. Request accepted for processing",
        "CustomerMessage":     "Success. Request accepted for processing",
    })


@pytest.fixture
def gateway(credentials):
    return DarajaGateway(credentials, clock=lambda: FIXED_NOW)


@pytest.fixture
def request_250():
    return PaymentRequest(order_id="ORD-1", amount=250, customer_phone="0712345678")


class TestDarajaGatewayInit:

    def test_incomplete_credentials_raise(self):
        creds = ProviderCredentials(
            short_code="", pass_key="", consumer_key="k",
            consumer_secret="s", callback_url="",
        )
        with pytest.raises(ConfigurationError) as exc_info:
            DarajaGateway(creds)

        assert exc_info.value.missing == ["short_code", "pass_key", "callback_url"]

    def test_token_client_shares_session(self, gateway):
        assert gateway.token_client._session is gateway._session


class TestInitiate:

    def test_queued_on_response_code_zero(self, gateway, request_250):
        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", return_value=_push_accepted()):
            result = gateway.initiate(request_250)

        assert result.state is PushState.QUEUED
        assert result.correlation_id == "ws_CO_123"
        assert result.secondary_id == "mrq-001"
        assert result.message == "Success. Request accepted for processing"
        assert result.raw_response_code == "0"

    def test_envelope_contents(self, gateway, credentials):
        request = PaymentRequest(order_id="ORD-1", amount=1499.6, customer_phone="0712 345 678")

        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", return_value=_push_accepted()) as mock_post:
            gateway.initiate(request)

        args, kwargs = mock_post.call_args
        body = kwargs["json"]
        assert args[0] == "https://sandbox.safaricom.co.ke/mpesa/stkpush/v1/processrequest"
        assert kwargs["headers"]["Authorization"] == "Bearer daraja_tok_abc"
        assert kwargs["timeout"] == 15
        assert body == {
            "BusinessShortCode": "174379",
            "Password":          derive_password("174379", "test_passkey", "20240101120000"),
            "Timestamp":         "20240101120000",
            "TransactionType":   "CustomerPayBillOnline",
            "Amount":            1500,
            "PartyA":            "254712345678",
            "PartyB":            "174379",
            "PhoneNumber":       "254712345678",
            "CallBackURL":       credentials.callback_url,
            "AccountReference":  "ORD-1",
            "TransactionDesc":   "Order ORD-1",
        }

    def test_reference_and_description_are_clipped(self, gateway):
        request = PaymentRequest(
            order_id="ORD-1",
            amount=100,
            customer_phone="254712345678",
            account_reference="INVOICE-2024-000123",
            description="Payment for fresh farm produce",
        )

        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", return_value=_push_accepted()) as mock_post:
            gateway.initiate(request)

        body = mock_post.call_args[1]["json"]
        assert body["AccountReference"] == "INVOICE-2024"
        assert body["TransactionDesc"] == "Payment for f"

    def test_fresh_timestamp_every_call(self, credentials, request_250):
        seconds = count()
        gateway = DarajaGateway(credentials, clock=lambda: datetime(2024, 1, 1, 12, 0, next(seconds)))

        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", return_value=_push_accepted()) as mock_post:
            gateway.initiate(request_250)
            gateway.initiate(request_250)

        first, second = (c[1]["json"] for c in mock_post.call_args_list)
        assert first["Timestamp"] != second["Timestamp"]
        assert first["Password"] != second["Password"]

    def test_exactly_one_token_and_one_push(self, gateway, request_250):
        with patch.object(gateway._session, "get", return_value=daraja_token_resp()) as mock_get, \
             patch.object(gateway._session, "post", return_value=_push_accepted()) as mock_post:
            gateway.initiate(request_250)

        assert mock_get.call_count == 1
        assert mock_post.call_count == 1

    def test_declined_push_is_returned_not_raised(self, gateway, request_250):
        declined = mock_http_response({
            "MerchantRequestID":   "mrq-002",
            "ResponseCode":        "1",
            "ResponseDescription": "The balance is insufficient for the transaction",
        })

        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", return_value=declined):
            result = gateway.initiate(request_250)

        assert result.state is PushState.FAILED
        assert result.correlation_id is None
        assert result.message == "Insufficient funds in your account"
        assert result.raw_response_code == "1"
        assert result.raw_response_description == "The balance is insufficient for the transaction"

    def test_daraja_error_body_on_4xx_is_a_failed_push(self, gateway, request_250):
        rejected = mock_http_response({
            "requestId":    "1234-5678",
            "errorCode":    "400.002.02",
            "errorMessage": "Bad Request - Invalid PhoneNumber",
        }, 400)

        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", return_value=rejected):
            result = gateway.initiate(request_250)

        assert result.state is PushState.FAILED
        assert result.message == "Invalid payment request"
        assert result.raw_response_code == "400.002.02"
        assert result.raw_response_description == "Bad Request - Invalid PhoneNumber"

    def test_unknown_response_code_keeps_provider_description(self, gateway, request_250):
        odd = mock_http_response({"ResponseCode": "77", "ResponseDescription": "Something odd"})

        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", return_value=odd):
            result = gateway.initiate(request_250)

        assert result.state is PushState.FAILED
        assert result.message == "Something odd"

    @pytest.mark.parametrize("amount", [0, -10, 0.2])
    def test_non_positive_amount_makes_no_network_call(self, gateway, amount):
        request = PaymentRequest(order_id="ORD-1", amount=amount, customer_phone="0712345678")

        with patch.object(gateway._session, "get") as mock_get, \
             patch.object(gateway._session, "post") as mock_post:
            with pytest.raises(ValidationError, match="greater than 0"):
                gateway.initiate(request)

        assert mock_get.call_count == 0
        assert mock_post.call_count == 0

    def test_invalid_phone_makes_no_network_call(self, gateway):
        request = PaymentRequest(order_id="ORD-1", amount=100, customer_phone="123")

        with patch.object(gateway._session, "get") as mock_get, \
             patch.object(gateway._session, "post") as mock_post:
            with pytest.raises(ValidationError, match="Kenyan mobile number"):
                gateway.initiate(request)

        mock_get.assert_not_called()
        mock_post.assert_not_called()

    def test_missing_order_id_is_rejected(self, gateway):
        with pytest.raises(ValidationError, match="order_id"):
            gateway.initiate(PaymentRequest(order_id=" ", amount=100, customer_phone="0712345678"))

    def test_token_failure_stops_before_push(self, gateway, request_250):
        denied = mock_http_response({"errorMessage": "Invalid credentials"}, 401)

        with patch.object(gateway._session, "get", return_value=denied), \
             patch.object(gateway._session, "post") as mock_post:
            with pytest.raises(AuthError):
                gateway.initiate(request_250)

        mock_post.assert_not_called()

    def test_network_error_raises_provider_error(self, gateway, request_250):
        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", side_effect=requests.ConnectionError("reset")):
            with pytest.raises(ProviderError, match="network error") as exc_info:
                gateway.initiate(request_250)

        assert exc_info.value.timeout is False

    def test_timeout_raises_provider_error(self, gateway, request_250):
        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", side_effect=requests.Timeout("slow")) as mock_post:
            with pytest.raises(ProviderError) as exc_info:
                gateway.initiate(request_250)

        assert exc_info.value.timeout is True
        assert mock_post.call_count == 1

    def test_non_json_body_raises_provider_error(self, gateway, request_250):
        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", return_value=mock_text_response("Bad Gateway", 502)):
            with pytest.raises(ProviderError, match="not JSON") as exc_info:
                gateway.initiate(request_250)

        assert exc_info.value.provider_status == 502

    def test_non_2xx_without_provider_code_raises(self, gateway, request_250):
        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", return_value=mock_http_response({"fault": "x"}, 503)):
            with pytest.raises(ProviderError, match="no result code"):
                gateway.initiate(request_250)

    def test_accepted_without_checkout_id_raises(self, gateway, request_250):
        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", return_value=mock_http_response({"ResponseCode": "0"})):
            with pytest.raises(ProviderError, match="CheckoutRequestID"):
                gateway.initiate(request_250)


class TestPoll:

    def _poll(self, gateway, response, correlation_id="ws_CO_123"):
        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", return_value=response) as mock_post:
            result = gateway.poll(correlation_id)
        return result, mock_post

    def test_result_code_zero_succeeds(self, gateway):
        result, mock_post = self._poll(gateway, mock_http_response({
            "ResponseCode":        "0",
            "ResponseDescription": "The service request has been accepted successsfully",
            "MerchantRequestID":   "mrq-001",
            "CheckoutRequestID":   "ws_CO_123",
            "ResultCode":          "0",
            "ResultDesc":          "The service request is processed successfully.",
        }))

        assert result.state is PollState.SUCCEEDED
        assert result.raw_result_code == "0"
        assert result.raw_result_description == "The service request is processed successfully."

        args, kwargs = mock_post.call_args
        assert args[0] == "https://sandbox.safaricom.co.ke/mpesa/stkpushquery/v1/query"
        assert kwargs["json"] == {
            "BusinessShortCode": "174379",
            "Password":          derive_password("174379", "test_passkey", "20240101120000"),
            "Timestamp":         "20240101120000",
            "CheckoutRequestID": "ws_CO_123",
        }

    def test_user_cancelled_fails(self, gateway):
        result, _ = self._poll(gateway, mock_http_response({
            "ResponseCode": "0", "ResultCode": "1032", "ResultDesc": "Request cancelled by user",
        }))

        assert result.state is PollState.FAILED
        assert result.message == "Transaction was cancelled by user"
        assert result.raw_result_code == "1032"

    def test_integer_timeout_code_fails(self, gateway):
        result, _ = self._poll(gateway, mock_http_response({
            "ResponseCode": "0", "ResultCode": 1037, "ResultDesc": "DS timeout user cannot be reached",
        }))

        assert result.state is PollState.FAILED
        assert result.raw_result_code == "1037"
        assert result.message == "Transaction timed out"

    def test_being_processed_error_is_processing(self, gateway):
        result, _ = self._poll(gateway, mock_http_response({
            "requestId":    "8945-4213417-1",
            "errorCode":    "500.001.1001",
            "errorMessage": "The transaction is being processed",
        }, 500))

        assert result.state is PollState.PROCESSING
        assert result.state.terminal is False

    def test_accepted_without_result_is_processing(self, gateway):
        result, _ = self._poll(gateway, mock_http_response({
            "ResponseCode": "0", "ResponseDescription": "Accepted", "CheckoutRequestID": "ws_CO_123",
        }))

        assert result.state is PollState.PROCESSING

    def test_unknown_result_code_fails_with_raw_description(self, gateway):
        result, _ = self._poll(gateway, mock_http_response({
            "ResponseCode": "0", "ResultCode": "5555", "ResultDesc": "Something odd",
        }))

        assert result.state is PollState.FAILED
        assert result.raw_result_code == "5555"
        assert result.raw_result_description == "Something odd"
        assert result.message == "Something odd"

    def test_throttled_query_raises(self, gateway):
        with pytest.raises(ProviderError, match="throttled"):
            self._poll(gateway, mock_http_response({
                "errorCode": "500.003.02", "errorMessage": "Spike arrest violation",
            }, 500))

    def test_poll_is_idempotent(self, gateway):
        response = mock_http_response({"ResponseCode": "0", "ResultCode": "0", "ResultDesc": "ok"})

        first, _ = self._poll(gateway, response)
        second, _ = self._poll(gateway, response)

        assert first == second

    def test_empty_correlation_id_makes_no_call(self, gateway):
        with patch.object(gateway._session, "get") as mock_get:
            with pytest.raises(ValidationError):
                gateway.poll("")

        mock_get.assert_not_called()

    def test_transport_failure_raises(self, gateway):
        with patch.object(gateway._session, "get", return_value=daraja_token_resp()), \
             patch.object(gateway._session, "post", side_effect=requests.ConnectionError("down")):
            with pytest.raises(ProviderError):
                gateway.poll("ws_CO_123")


class TestMapQueryResponse:

    @pytest.mark.parametrize("body, state", [
        ({"ResultCode": "0"}, PollState.SUCCEEDED),
        ({"ResultCode": 0}, PollState.SUCCEEDED),
        ({"ResultCode": "4999", "ResultDesc": "The transaction is still under processing"}, PollState.PROCESSING),
        ({"ResultCode": "1"}, PollState.FAILED),
        ({"ResultCode": "2001"}, PollState.FAILED),
        ({"ResultCode": "1019"}, PollState.FAILED),
        ({"errorCode": "500.001.1001"}, PollState.PROCESSING),
        ({"errorCode": "400.002.02", "errorMessage": "Invalid CheckoutRequestID"}, PollState.FAILED),
        ({"ResponseCode": "0"}, PollState.PROCESSING),
        ({"ResponseCode": "1", "ResponseDescription": "Rejected"}, PollState.FAILED),
        ({}, PollState.FAILED),
    ])
    def test_state_mapping(self, body, state):
        assert map_query_response(body).state is state

    def test_result_code_wins_over_response_code(self):
        result = map_query_response({"ResponseCode": "0", "ResultCode": "1032"})
        assert result == PollResult(
            state=PollState.FAILED,
            message="Transaction was cancelled by user",
            raw_result_code="1032",
            raw_result_description=None,
        )


class TestParseStkCallback:

    def test_success_callback(self):
        result = parse_stk_callback({
            "Body": {
                "stkCallback": {
                    "MerchantRequestID": "mrq-001",
                    "CheckoutRequestID": "ws_CO_123",
                    "ResultCode":        0,
                    "ResultDesc":        "The service request is processed successfully.",
                    "CallbackMetadata": {
                        "Item": [
                            {"Name": "Amount",             "Value": 250},
                            {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
                            {"Name": "Balance"},
                            {"Name": "TransactionDate",    "Value": 20240101120000},
                            {"Name": "PhoneNumber",        "Value": 254712345678},
                        ]
                    },
                }
            }
        })

        assert result.correlation_id == "ws_CO_123"
        assert result.secondary_id == "mrq-001"
        assert result.poll_result.state is PollState.SUCCEEDED
        assert result.receipt_number == "NLJ7RT61SV"
        assert result.amount == 250
        assert result.phone_number == "254712345678"
        assert result.transaction_date == "20240101120000"
        assert result.metadata["Balance"] is None

    def test_cancelled_callback(self):
        result = parse_stk_callback({
            "Body": {"stkCallback": {
                "CheckoutRequestID": "ws_CO_CANCEL",
                "ResultCode":        1032,
                "ResultDesc":        "Request cancelled by user",
            }}
        })

        assert result.poll_result.state is PollState.FAILED
        assert result.receipt_number is None

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {},
        {"Body": {}},
        {"Body": {"stkCallback": {"ResultCode": 0}}},
        {"Body": {"stkCallback": {"CheckoutRequestID": "ws_CO_1"}}},
    ])
    def test_malformed_callback_raises(self, payload):
        with pytest.raises(ValidationError):
            parse_stk_callback(payload)
