# freelancedesk/mailer.py

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

logger = logging.getLogger(__name__)


class MailError(Exception):
    pass


class Mailer:
    """
    Minimal SMTP sender for transactional mail.

    With MAIL_SUPPRESS_SEND set (the default when no SMTP_HOST is configured)
    messages are only logged and kept in ``sent`` so they can be inspected.
    """

    def __init__(self, app=None):
        self.sent = []
        self.host = None
        self.port = 587
        self.username = None
        self.password = None
        self.sender = None
        self.suppress = True
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.host = app.config.get('SMTP_HOST')
        self.port = int(app.config.get('SMTP_PORT') or 587)
        self.username = app.config.get('SMTP_USER')
        self.password = app.config.get('SMTP_PASSWORD')
        self.sender = app.config.get('MAIL_FROM') or 'FreelanceDesk <noreply@freelancedesk.app>'
        self.suppress = app.config.get('MAIL_SUPPRESS_SEND', not self.host)
        self.sent = []
        app.extensions['mailer'] = self

    def send(self, to, subject, html):
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = self.sender
        msg['To'] = to
        msg.attach(MIMEText(html, 'html'))

        if self.suppress:
            logger.info("Mail suppressed, would send '%s' to %s", subject, to)
            self.sent.append({'to': to, 'subject': subject, 'html': html})
            return

        try:
            with smtplib.SMTP(self.host, self.port, timeout=10) as server:
                server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailError(f'Failed to send mail to {to}: {e}') from e
        logger.info("Mail '%s' sent to %s", subject, to)
