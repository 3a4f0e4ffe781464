"""SES トランスポートのエラー分類のテスト。"""

from __future__ import annotations

from unittest.mock import patch

import boto3
import pytest
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)
from botocore.stub import Stubber

from contact_intake.clients import ses_client
from contact_intake.core.models import OutboundMail
from contact_intake.features.contact_post.dispatcher_contact_post import (
    AmbiguousDispatchError,
    PermanentDispatchError,
    SesMailTransport,
    TransientDispatchError,
)

SEND_EMAIL = "contact_intake.features.contact_post.dispatcher_contact_post.ses_client.send_email"
ENDPOINT = "https://email.ap-northeast-1.amazonaws.com"

MAIL = OutboundMail(
    to_address="owner@portfolio.dev",
    subject="[Portfolio Contact] Hello",
    body_text="body",
    reply_to="ada@lovelace.dev",
)


def _client_error(code: str, status: int) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": "details for ada@lovelace.dev"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        "SendEmail",
    )


def test_SES_へ送信パラメータを渡す() -> None:
    transport = SesMailTransport(region="ap-northeast-1", source="no-reply@portfolio.dev")

    with patch(SEND_EMAIL) as mock_send:
        transport.send(MAIL)

    mock_send.assert_called_once_with(
        region="ap-northeast-1",
        source="no-reply@portfolio.dev",
        to_addresses=["owner@portfolio.dev"],
        subject="[Portfolio Contact] Hello",
        body_text="body",
        reply_to=["ada@lovelace.dev"],
    )


@pytest.mark.parametrize(
    ("code", "status", "expected"),
    [
        ("Throttling", 400, TransientDispatchError),
        ("ServiceUnavailable", 503, TransientDispatchError),
        ("InternalFailure", 500, TransientDispatchError),
        ("SomethingNew", 502, TransientDispatchError),
        ("MessageRejected", 400, PermanentDispatchError),
        ("MailFromDomainNotVerifiedException", 400, PermanentDispatchError),
        ("InvalidParameterValue", 400, PermanentDispatchError),
    ],
)
def test_ClientError_を分類する(code: str, status: int, expected: type[Exception]) -> None:
    transport = SesMailTransport(region="ap-northeast-1", source="no-reply@portfolio.dev")

    with patch(SEND_EMAIL, side_effect=_client_error(code, status)):
        with pytest.raises(expected) as exc_info:
            transport.send(MAIL)

    assert exc_info.value.code == code
    assert "ada@lovelace.dev" not in str(exc_info.value)


@pytest.mark.parametrize(
    ("error", "expected", "code"),
    [
        (EndpointConnectionError(endpoint_url=ENDPOINT), TransientDispatchError, "CONNECTION"),
        (ReadTimeoutError(endpoint_url=ENDPOINT), AmbiguousDispatchError, "READ_TIMEOUT"),
        (ConnectionClosedError(endpoint_url=ENDPOINT), AmbiguousDispatchError, "HTTP_CLIENT"),
        (NoCredentialsError(), PermanentDispatchError, "CLIENT_CONFIG"),
    ],
)
def test_通信エラーを分類する(error: Exception, expected: type[Exception], code: str) -> None:
    transport = SesMailTransport(region="ap-northeast-1", source="no-reply@portfolio.dev")

    with patch(SEND_EMAIL, side_effect=error):
        with pytest.raises(expected) as exc_info:
            transport.send(MAIL)

    assert exc_info.value.code == code


def test_send_email_は_ReplyTo_を付けて送る(monkeypatch: pytest.MonkeyPatch) -> None:
    client = boto3.client(
        "ses",
        region_name="ap-northeast-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    monkeypatch.setattr(ses_client, "get_client", lambda region: client)

    with Stubber(client) as stubber:
        stubber.add_response(
            "send_email",
            {"MessageId": "message-1"},
            expected_params={
                "Source": "no-reply@portfolio.dev",
                "Destination": {"ToAddresses": ["owner@portfolio.dev"]},
                "Message": {
                    "Subject": {"Charset": "UTF-8", "Data": "Hello"},
                    "Body": {"Text": {"Charset": "UTF-8", "Data": "body"}},
                },
                "ReplyToAddresses": ["ada@lovelace.dev"],
            },
        )
        response = ses_client.send_email(
            region="ap-northeast-1",
            source="no-reply@portfolio.dev",
            to_addresses=["owner@portfolio.dev"],
            subject="Hello",
            body_text="body",
            reply_to=["ada@lovelace.dev"],
        )
        stubber.assert_no_pending_responses()

    assert response["MessageId"] == "message-1"
