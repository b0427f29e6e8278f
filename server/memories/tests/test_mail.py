import base64
import smtplib
import unittest
from unittest.mock import MagicMock, patch

from memories.config import Settings
from memories.mail import (
    Attachment,
    InMemoryMailSender,
    MailProviderError,
    ResendMailSender,
    SendGridMailSender,
    SmtpMailSender,
    UniSenderMailSender,
    build_mail_sender,
)

ATTACHMENT = Attachment(
    filename="invite.ics",
    content_type="text/calendar",
    content=base64.b64encode(b"BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n").decode("ascii"),
)


def _response(status_code=200, json_data=None, json_error=False, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.headers = headers or {}
    response.text = "<html>oops</html>"
    if json_error:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = json_data
    return response


class UniSenderTests(unittest.TestCase):
    def setUp(self):
        self.sender = UniSenderMailSender(api_key="key", from_email="from@example.test")

    @patch("memories.mail.requests.post")
    def test_success(self, mock_post):
        mock_post.return_value = _response(json_data={"status": "success", "job_id": "j1"})

        result = self.sender.send(["to@example.test"], "Hi", "<p>x</p>", "x", [ATTACHMENT])

        self.assertEqual(result.message_id, "j1")
        payload = mock_post.call_args.kwargs["json"]
        self.assertEqual(payload["message"]["recipients"], [{"email": "to@example.test"}])
        self.assertEqual(payload["message"]["attachments"][0]["name"], "invite.ics")
        self.assertEqual(payload["message"]["body"]["plaintext"], "x")

    @patch("memories.mail.requests.post")
    def test_provider_error(self, mock_post):
        mock_post.return_value = _response(
            400, json_data={"status": "error", "message": "invalid api key", "code": 101}
        )

        with self.assertRaises(MailProviderError) as ctx:
            self.sender.send(["to@example.test"], "Hi", "", "")
        self.assertEqual(ctx.exception.message, "invalid api key")

    @patch("memories.mail.requests.post")
    def test_malformed_response(self, mock_post):
        mock_post.return_value = _response(502, json_error=True)

        with self.assertRaises(MailProviderError):
            self.sender.send(["to@example.test"], "Hi", "", "")


class SendGridTests(unittest.TestCase):
    @patch("memories.mail.requests.post")
    def test_accepted(self, mock_post):
        mock_post.return_value = _response(202, headers={"X-Message-Id": "m1"})
        sender = SendGridMailSender(api_key="key", from_email="from@example.test")

        result = sender.send(["a@example.test"], "Hi", "<b>x</b>", "x", [ATTACHMENT])

        self.assertEqual(result.message_id, "m1")
        payload = mock_post.call_args.kwargs["json"]
        self.assertEqual(payload["attachments"][0]["disposition"], "attachment")
        self.assertEqual(mock_post.call_args.kwargs["headers"]["Authorization"], "Bearer key")

    @patch("memories.mail.requests.post")
    def test_error_message_surfaced(self, mock_post):
        mock_post.return_value = _response(
            401, json_data={"errors": [{"message": "permission denied"}]}
        )
        sender = SendGridMailSender(api_key="key", from_email="from@example.test")

        with self.assertRaises(MailProviderError) as ctx:
            sender.send(["a@example.test"], "Hi", "", "")
        self.assertEqual(ctx.exception.message, "permission denied")


class ResendTests(unittest.TestCase):
    @patch("memories.mail.requests.post")
    def test_success_and_error(self, mock_post):
        sender = ResendMailSender(api_key="key", from_email="from@example.test", from_name="Me")

        mock_post.return_value = _response(json_data={"id": "r1"})
        self.assertEqual(sender.send(["a@example.test"], "Hi", "", "").message_id, "r1")
        self.assertEqual(mock_post.call_args.kwargs["json"]["from"], "Me <from@example.test>")

        mock_post.return_value = _response(422, json_data={"message": "bad from"})
        with self.assertRaises(MailProviderError):
            sender.send(["a@example.test"], "Hi", "", "")


class SmtpTests(unittest.TestCase):
    def setUp(self):
        self.sender = SmtpMailSender(
            host="smtp.mail.ru",
            port=465,
            username="me@mail.ru",
            password="secret",
            from_email="me@mail.ru",
            from_name="Me",
        )

    @patch("memories.mail.smtplib.SMTP_SSL")
    def test_sends_over_ssl(self, mock_ssl):
        server = mock_ssl.return_value
        server.send_message.return_value = {}

        self.sender.send(["a@example.test"], "Hi", "<p>x</p>", "x", [ATTACHMENT])

        mock_ssl.assert_called_once()
        server.login.assert_called_once_with("me@mail.ru", "secret")
        message = server.send_message.call_args.args[0]
        self.assertEqual(message["To"], "a@example.test")
        names = [part.get_filename() for part in message.iter_attachments()]
        self.assertEqual(names, ["invite.ics"])

    @patch("memories.mail.smtplib.SMTP_SSL")
    def test_smtp_failure(self, mock_ssl):
        server = mock_ssl.return_value
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"auth failed")

        with self.assertRaises(MailProviderError):
            self.sender.send(["a@example.test"], "Hi", "", "x")


class BuildMailSenderTests(unittest.TestCase):
    def test_selection(self):
        self.assertIsInstance(
            build_mail_sender(Settings(_env_file=None, mail_provider="sendgrid", use_in_memory_backends=False)),
            SendGridMailSender,
        )
        self.assertIsInstance(
            build_mail_sender(Settings(_env_file=None, mail_provider="SMTP", use_in_memory_backends=False)),
            SmtpMailSender,
        )
        self.assertIsInstance(
            build_mail_sender(
                Settings(_env_file=None, mail_provider="resend", use_in_memory_backends=True)
            ),
            InMemoryMailSender,
        )

    def test_unknown_provider(self):
        with self.assertRaises(ValueError):
            build_mail_sender(Settings(_env_file=None, mail_provider="pigeon", use_in_memory_backends=False))


if __name__ == "__main__":
    unittest.main()
