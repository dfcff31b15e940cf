import unittest
from unittest.mock import MagicMock, patch

import requests

from relay.discord.webhook_client import (
    DiscordWebhookClient,
    post_webhook_payload,
    sanitize_token_from_text,
    sanitize_webhook_for_logging,
    validate_webhook_url,
)

WEBHOOK_URL = "https://discord.com/api/webhooks/123456789/SuperSecretToken123"


class TestValidateWebhookUrl(unittest.TestCase):
    def test_valid_urls(self):
        self.assertTrue(validate_webhook_url(WEBHOOK_URL)[0])
        self.assertTrue(validate_webhook_url("https://discordapp.com/api/webhooks/1/abc-DEF_1")[0])
        self.assertTrue(validate_webhook_url("https://canary.discord.com/api/webhooks/1/abc")[0])

    def test_invalid_urls(self):
        self.assertEqual(validate_webhook_url(""), (False, "Webhook URL is empty"))
        self.assertFalse(validate_webhook_url("ftp://discord.com/api/webhooks/1/abc")[0])
        self.assertFalse(validate_webhook_url("https://example.com/hook")[0])


class TestSanitization(unittest.TestCase):
    def test_sanitize_webhook_for_logging(self):
        """The token part of a webhook URL is hidden."""
        self.assertEqual(
            sanitize_webhook_for_logging(WEBHOOK_URL),
            "https://discord.com/api/webhooks/123456789/[REDACTED]",
        )
        self.assertEqual(sanitize_webhook_for_logging("https://example.com/x"), "[REDACTED_WEBHOOK_URL]")
        self.assertEqual(sanitize_webhook_for_logging(""), "")

    def test_sanitize_token_from_text(self):
        """Tokens are removed whether they appear inside a URL or on their own."""
        text = f"Failed to send to {WEBHOOK_URL}"
        sanitized = sanitize_token_from_text(text, WEBHOOK_URL)
        self.assertNotIn("SuperSecretToken123", sanitized)
        self.assertIn("[REDACTED]", sanitized)

        text = "Some error occurred with token SuperSecretToken123 processing"
        sanitized = sanitize_token_from_text(text, WEBHOOK_URL)
        self.assertNotIn("SuperSecretToken123", sanitized)

    def test_other_webhooks_redacted(self):
        text = "see https://discord.com/api/webhooks/42/OtherToken"
        self.assertNotIn("OtherToken", sanitize_token_from_text(text, WEBHOOK_URL))


class TestPostWebhookPayload(unittest.TestCase):
    @patch("requests.post")
    def test_posts_json(self, mock_post):
        mock_post.return_value = MagicMock(status_code=204)
        payload = {"content": "hi"}

        post_webhook_payload(WEBHOOK_URL, payload, timeout=5)

        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], WEBHOOK_URL)
        self.assertEqual(kwargs["json"], payload)
        self.assertEqual(kwargs["timeout"], 5)


class TestDiscordWebhookClient(unittest.IsolatedAsyncioTestCase):
    async def test_success(self):
        response = MagicMock(status_code=204, text="")
        with patch("requests.post", return_value=response) as mock_post:
            result = await DiscordWebhookClient().post(WEBHOOK_URL, {"content": "hi"})

        mock_post.assert_called_once()
        self.assertTrue(result.ok)
        self.assertEqual(result.status_code, 204)

    async def test_error_response_is_sanitized(self):
        """Error bodies that echo the webhook URL do not leak the token."""
        response = MagicMock(status_code=400, text=f"Error processing request to {WEBHOOK_URL}")
        with patch("requests.post", return_value=response):
            result = await DiscordWebhookClient().post(WEBHOOK_URL, {"content": "hi"})

        self.assertFalse(result.ok)
        self.assertEqual(result.status_code, 400)
        self.assertNotIn("SuperSecretToken123", result.text)

    async def test_single_attempt_on_failure(self):
        """Server errors are reported back, not retried."""
        response = MagicMock(status_code=500, text="oops")
        with patch("requests.post", return_value=response) as mock_post:
            result = await DiscordWebhookClient().post(WEBHOOK_URL, {})

        self.assertEqual(mock_post.call_count, 1)
        self.assertEqual(result.status_code, 500)

    async def test_timeout(self):
        with patch("requests.post", side_effect=requests.exceptions.Timeout()):
            result = await DiscordWebhookClient().post(WEBHOOK_URL, {})

        self.assertEqual(result.status_code, 0)
        self.assertFalse(result.ok)

    async def test_connection_error_is_sanitized(self):
        error = requests.exceptions.ConnectionError(f"Max retries exceeded with url: {WEBHOOK_URL}")
        with patch("requests.post", side_effect=error):
            result = await DiscordWebhookClient().post(WEBHOOK_URL, {})

        self.assertEqual(result.status_code, 0)
        self.assertNotIn("SuperSecretToken123", result.text)

    async def test_long_response_clipped(self):
        response = MagicMock(status_code=400, text="x" * 2000)
        with patch("requests.post", return_value=response):
            result = await DiscordWebhookClient().post(WEBHOOK_URL, {})

        self.assertEqual(len(result.text), DiscordWebhookClient.MAX_RESPONSE_LOG_LENGTH)


if __name__ == "__main__":
    unittest.main()
