"""
Tests for src/services/forms.py - prefilled form links and invitation emails.
"""
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs, unquote, urlparse

import pytest

from src.schemas.drivers import DriverRecord
from src.services.forms import (
    FormInvitationError,
    _send_email,
    build_prefilled_url,
    build_qr_code_url,
    send_additional_details_form,
)


def _settings(**overrides):
    settings = MagicMock()
    settings.additional_details_form_id = "IlRPTScI"
    settings.forms_sender_email = "recruitment@example.com"
    settings.forms_sender_name = "Recruitment"
    settings.sendgrid_api_key = ""
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


class TestBuildPrefilledUrl:
    def test_hidden_fields_in_fragment(self):
        url = build_prefilled_url("IlRPTScI", {"first_name": "Jordan", "monday_id": "5"})

        parsed = urlparse(url)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://form.typeform.com/to/IlRPTScI"
        assert parse_qs(parsed.fragment) == {"first_name": ["Jordan"], "monday_id": ["5"]}

    def test_values_are_encoded(self):
        url = build_prefilled_url("IlRPTScI", {"email": "a+b@example.com"})
        assert "email=a%2Bb%40example.com" in url


class TestBuildQrCodeUrl:
    def test_wraps_target_url(self):
        qr = build_qr_code_url("https://form.typeform.com/to/X#monday_id=5")

        assert qr.startswith("https://api.qrserver.com/v1/create-qr-code/?size=220x220&data=")
        assert unquote(qr.split("data=", 1)[1]) == "https://form.typeform.com/to/X#monday_id=5"


class TestSendEmail:
    async def test_without_api_key_only_logs(self):
        with patch("src.services.forms.get_settings", return_value=_settings()):
            message_id = await _send_email("jordan@example.com", "Subject", "<p>x</p>", "x")
        assert message_id.startswith("log-")

    async def test_with_api_key_sends_through_sendgrid(self):
        response = MagicMock()
        response.headers = {"X-Message-Id": "sg-123"}
        client = MagicMock()
        client.send.return_value = response

        with (
            patch("src.services.forms.get_settings", return_value=_settings(sendgrid_api_key="SG.key")),
            patch("sendgrid.SendGridAPIClient", return_value=client) as client_cls,
        ):
            message_id = await _send_email("jordan@example.com", "Subject", "<p>x</p>", "x")

        assert message_id == "sg-123"
        client_cls.assert_called_once_with(api_key="SG.key")
        client.send.assert_called_once()


class TestSendAdditionalDetailsForm:
    async def test_prefills_driver_details(self):
        driver = DriverRecord(
            id="5", first_name="Jordan", last_name="Lee",
            email="jordan.lee@example.com", phone="+1 555-0105",
        )
        with patch("src.services.forms.get_settings", return_value=_settings()):
            result = await send_additional_details_form(driver)

        assert result.sent is True
        fragment = parse_qs(urlparse(result.prefilled_url).fragment)
        assert fragment == {
            "first_name": ["Jordan"],
            "last_name": ["Lee"],
            "email": ["jordan.lee@example.com"],
            "phone_number": ["+1 555-0105"],
            "monday_id": ["5"],
        }
        assert result.qr_code_url.startswith("https://api.qrserver.com/")

    async def test_monday_id_override(self):
        driver = DriverRecord(id="5", email="jordan.lee@example.com")
        with patch("src.services.forms.get_settings", return_value=_settings()):
            result = await send_additional_details_form(driver, monday_id="9876")
        assert "monday_id=9876" in result.prefilled_url

    async def test_driver_without_email_rejected(self):
        with pytest.raises(ValueError):
            await send_additional_details_form(DriverRecord(id="5"))

    async def test_submitted_name_is_escaped_in_html(self):
        driver = DriverRecord(
            id="5", first_name="<script>alert(1)</script>", email="jordan.lee@example.com",
        )
        with (
            patch("src.services.forms.get_settings", return_value=_settings()),
            patch("src.services.forms._send_email", new_callable=AsyncMock, return_value="m-1") as send,
        ):
            await send_additional_details_form(driver)

        html_body, text_body = send.await_args.args[2], send.await_args.args[3]
        assert "<script>" not in html_body
        assert "Hi &lt;script&gt;alert(1)&lt;/script&gt;," in html_body
        assert "Hi <script>alert(1)</script>," in text_body

    async def test_send_errors_wrapped(self):
        driver = DriverRecord(id="5", email="jordan.lee@example.com")
        with (
            patch("src.services.forms.get_settings", return_value=_settings()),
            patch("src.services.forms._send_email", side_effect=RuntimeError("smtp down")),
        ):
            with pytest.raises(FormInvitationError, match="smtp down"):
                await send_additional_details_form(driver)
