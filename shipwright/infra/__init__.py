from shipwright.infra.mail_client import HttpMailClient, LogMailClient, MailClient

__all__ = [
    "HttpMailClient",
    "LogMailClient",
    "MailClient",
]
