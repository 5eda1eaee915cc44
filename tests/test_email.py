from unittest.mock import MagicMock, patch

import pytest

from utils.email import render_email, sanitize_html, sanitize_url, send_email_html


class TestRendering:
    def test_render_cleans_content_and_links(self):
        html = render_email("base.html", {
            "subject": "Hello",
            "title": "Hello",
            "content_html": "<p>ok</p><script>alert(1)</script><iframe src='x'></iframe>",
            "cta_url": "javascript:alert(1)",
        })

        assert "<p>ok</p>" in html
        assert "<script>" not in html
        assert "<iframe" not in html
        assert "javascript:" not in html

    def test_sanitize_helpers(self):
        assert sanitize_url("https://formdrop.app") == "https://formdrop.app"
        assert sanitize_url("ftp://x") == ""
        assert sanitize_html("") == ""
        assert sanitize_html('<a href="https://x" onclick="evil()">x</a>') == '<a href="https://x">x</a>'


class TestSend:
    def test_unconfigured_smtp_raises(self, monkeypatch):
        monkeypatch.delenv("SMTP_PASSWORD", raising=False)
        monkeypatch.delenv("RESEND_API_KEY", raising=False)

        with pytest.raises(RuntimeError):
            send_email_html("owner@example.com", "Subject", "<p>hi</p>")

    def test_starttls_send(self, monkeypatch):
        monkeypatch.setenv("SMTP_PASSWORD", "secret")
        monkeypatch.setenv("SMTP_PORT", "587")
        monkeypatch.setenv("SMTP_FROM", "forms@example.com")
        monkeypatch.delenv("SMTP_USER", raising=False)
        server = MagicMock()

        with patch("utils.email.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value = server
            send_email_html("owner@example.com", "Subject", "<p>hi</p>")

        server.starttls.assert_called_once()
        server.login.assert_called_once_with("resend", "secret")
        sent = server.send_message.call_args.args[0]
        assert sent["To"] == "owner@example.com"
        assert sent["From"] == "forms@example.com"
