import json

import httpx
import pytest

from bgv_otp.core.config import Settings
from bgv_otp.core.exceptions import DeliveryFailed
from bgv_otp.core.otp import format_phone_e164, mask_phone
from bgv_otp.core.sms import AwignSMSGateway, ConsoleSMSGateway, SMSMessage, build_sms_gateway

API_URL = "https://core-api.example.com/api/v1/sms"


def _gateway(handler, **overrides):
    options = dict(access_token="token", client_id="client", uid="uid")
    options.update(overrides)
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return AwignSMSGateway(API_URL, client=client, **options)


def _message():
    return SMSMessage(mobile_number="9999999999", text="123456 is your OTP", template_id="1107176258859911807")


def test_posts_template_payload_with_auth_headers():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": "success"})

    _gateway(handler).send(_message())

    assert seen["url"] == API_URL
    assert seen["headers"]["access-token"] == "token"
    assert seen["headers"]["client"] == "client"
    assert seen["headers"]["uid"] == "uid"
    assert seen["headers"]["x-client_id"] == "core"
    assert seen["body"] == {
        "sms": {
            "mobile_number": "+919999999999",
            "template_id": "1107176258859911807",
            "message": "123456 is your OTP",
            "sender_id": "IAWIGN",
            "channel": "telspiel",
        }
    }


def test_non_2xx_is_delivery_failure():
    gateway = _gateway(lambda request: httpx.Response(502, text="bad gateway"))

    with pytest.raises(DeliveryFailed) as exc:
        gateway.send(_message())

    assert exc.value.message == "Failed to send OTP SMS. API returned status 502"


def test_error_body_with_200_is_delivery_failure():
    gateway = _gateway(lambda request: httpx.Response(200, json={"status": "error", "message": "DLT template mismatch"}))

    with pytest.raises(DeliveryFailed) as exc:
        gateway.send(_message())

    assert exc.value.message == "DLT template mismatch"


def test_plain_text_success_is_accepted():
    gateway = _gateway(lambda request: httpx.Response(200, text="queued"))

    gateway.send(_message())


def test_connection_error_is_delivery_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DeliveryFailed) as exc:
        _gateway(handler).send(_message())

    assert exc.value.message == "Failed to connect to SMS service"


def test_missing_credentials_never_call_api():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200)

    gateway = _gateway(handler, access_token=None)

    assert gateway.is_configured() is False
    with pytest.raises(DeliveryFailed) as exc:
        gateway.send(_message())
    assert exc.value.message == "SMS service not configured"
    assert calls == []


def test_factory_picks_provider():
    assert isinstance(build_sms_gateway(Settings(SMS_PROVIDER="console")), ConsoleSMSGateway)

    gateway = build_sms_gateway(
        Settings(SMS_PROVIDER="awign", SMS_ACCESS_TOKEN="a", SMS_CLIENT_ID="b", SMS_UID="c")
    )
    assert isinstance(gateway, AwignSMSGateway)
    assert gateway.is_configured()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("9999999999", "+919999999999"),
        ("919999999999", "+919999999999"),
        ("+919999999999", "+919999999999"),
        ("99999 99999", "+919999999999"),
        ("+14155550123", "+14155550123"),
    ],
)
def test_format_phone_e164(raw, expected):
    assert format_phone_e164(raw) == expected


def test_mask_phone():
    assert mask_phone("9999991234") == "******1234"
    assert mask_phone("123") == "123"
