import os
from nextmailer.email_providers.base import EmailProvider


def get_email_provider() -> EmailProvider:
    provider = os.getenv("EMAIL_PROVIDER", "ses").lower().strip()

    if provider == "ses":
        from nextmailer.email_providers.ses_provider import SesEmailProvider
        return SesEmailProvider()

    if provider == "sendgrid":
        from nextmailer.email_providers.sendgrid_provider import SendGridEmailProvider
        return SendGridEmailProvider()

    raise RuntimeError(f"Unsupported EMAIL_PROVIDER: {provider}")
