"""Email transport adapters and the failover chain."""
from quote_delivery.transport.base import (
    NotificationTransport,
    Sender,
    TransportError,
    classify_http_status,
)
from quote_delivery.transport.chain import TransportChain
from quote_delivery.transport.oauth import (
    ClientCredentialsTokenSource,
    GraphMailTransport,
    TokenCache,
)
from quote_delivery.transport.sendgrid import SendGridTransport
from quote_delivery.transport.smtp import SmtpTransport

__all__ = [
    "ClientCredentialsTokenSource",
    "GraphMailTransport",
    "NotificationTransport",
    "Sender",
    "SendGridTransport",
    "SmtpTransport",
    "TokenCache",
    "TransportChain",
    "TransportError",
    "classify_http_status",
]
