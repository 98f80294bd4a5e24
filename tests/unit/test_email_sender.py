from __future__ import annotations

import io
import json
import urllib.error

import pytest

from cosmic_dispatch.notifications.contracts import EmailNotification, FailureKind, InvalidEmailRecipientError, NotificationContent, TransientEmailProviderError
from cosmic_dispatch.notifications.email_sender import MailerSendConfig, MailerSendEmailSender, classify_email_status, redact_address
from cosmic_dispatch.notifications.template_renderer import build_event_email, render_email_template


class _FakeResponse:
  def __init__(self, headers: dict[str, str]) -> None:
    self.headers = _Headers(headers)

  def __enter__(self):
    return self

  def __exit__(self, *exc_info) -> None:
    return None


class _Headers:
  def __init__(self, values: dict[str, str]) -> None:
    self._values = values

  def items(self):
    return self._values.items()


def _config() -> MailerSendConfig:
  return MailerSendConfig(api_key="ms-key", from_address="stars@example.com", from_name="Cosmic", timeout_seconds=5)


def _email() -> EmailNotification:
  return EmailNotification(to_address="alice@example.com", to_name="Alice", subject="Full Moon", text="hello", html="<p>hello</p>", tags=("cosmic-event", "cosmic-moon"))


def test_mailersend_sender_posts_expected_payload(monkeypatch):
  captured = {}

  def _urlopen(request, timeout):
    captured["request"] = request
    captured["timeout"] = timeout
    return _FakeResponse({"X-Message-Id": "msg-1"})

  monkeypatch.setattr("cosmic_dispatch.notifications.email_sender.urllib.request.urlopen", _urlopen)

  result = MailerSendEmailSender(config=_config()).send(_email())

  request = captured["request"]
  payload = json.loads(request.data.decode("utf-8"))
  assert request.full_url == "https://api.mailersend.com/v1/email"
  assert request.get_header("Authorization") == "Bearer ms-key"
  assert payload["from"] == {"email": "stars@example.com", "name": "Cosmic"}
  assert payload["to"] == [{"email": "alice@example.com", "name": "Alice"}]
  assert payload["tags"] == ["cosmic-event", "cosmic-moon"]
  assert captured["timeout"] == 5
  assert result["message_id"] == "msg-1"


def test_mailersend_validation_error_is_permanent_and_names_the_field(monkeypatch):
  body = b'{"message": "The given data was invalid.", "errors": {"to.0.email": ["The to.0.email must be a valid email address."]}}'

  def _urlopen(request, timeout):
    raise urllib.error.HTTPError(request.full_url, 422, "Unprocessable Entity", hdrs=None, fp=io.BytesIO(body))

  monkeypatch.setattr("cosmic_dispatch.notifications.email_sender.urllib.request.urlopen", _urlopen)

  with pytest.raises(InvalidEmailRecipientError, match="to.0.email"):
    MailerSendEmailSender(config=_config()).send(_email())


@pytest.mark.parametrize("status", [429, 500, 503])
def test_mailersend_throttling_and_server_errors_are_transient(monkeypatch, status):
  def _urlopen(request, timeout):
    raise urllib.error.HTTPError(request.full_url, status, "error", hdrs=None, fp=io.BytesIO(b"not json"))

  monkeypatch.setattr("cosmic_dispatch.notifications.email_sender.urllib.request.urlopen", _urlopen)

  with pytest.raises(TransientEmailProviderError, match=f"status={status}"):
    MailerSendEmailSender(config=_config()).send(_email())


def test_mailersend_network_errors_are_transient(monkeypatch):
  def _urlopen(request, timeout):
    raise urllib.error.URLError("Name or service not known")

  monkeypatch.setattr("cosmic_dispatch.notifications.email_sender.urllib.request.urlopen", _urlopen)

  with pytest.raises(TransientEmailProviderError, match="unreachable"):
    MailerSendEmailSender(config=_config()).send(_email())


@pytest.mark.parametrize(("status", "expected"), [(401, FailureKind.PERMANENT), (422, FailureKind.PERMANENT), (408, FailureKind.TRANSIENT), (429, FailureKind.TRANSIENT), (502, FailureKind.TRANSIENT)])
def test_classify_email_status(status, expected):
  assert classify_email_status(status) is expected


def test_recipient_addresses_are_redacted_for_logs():
  assert redact_address("alice@example.com") == "a***@example.com"
  assert redact_address("not-an-address") == "***"


def test_event_email_greets_by_first_name_and_escapes_html():
  content = NotificationContent(title="Full Moon for Alice", body="Alice, <b>peak</b> illumination", tag="cosmic-moon", url="https://example.com/", data={})

  email = build_event_email(content=content, to_address="alice@example.com", to_name="alice smith")

  assert email.subject == "Full Moon for Alice"
  assert "Hi Alice," in email.text
  assert "&lt;b&gt;peak&lt;/b&gt;" in email.html
  assert "<b>peak</b>" in email.text


def test_event_email_without_name_uses_plain_greeting():
  content = NotificationContent(title="Full Moon", body="Peak illumination", tag="cosmic-moon", url="/", data={})

  email = build_event_email(content=content, to_address="anon@example.com", to_name=None)

  assert "Hi," in email.text
  assert "None" not in email.text


def test_render_rejects_missing_placeholders():
  with pytest.raises(ValueError, match="Missing placeholders"):
    render_email_template(template_id="cosmic_event_v1", placeholders={"title": "x"})
