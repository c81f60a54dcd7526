# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    VaultError,
    get_database_url,
    get_valkey_url,
    get_email_config,
    get_sms_config,
    get_stripe_config,
    get_stripe_price_ids,
)
from clients.postgres_client import PostgresClient, Transaction
from clients.valkey_client import ValkeyClient
from clients.email_client import EmailGatewayClient, EmailGatewayError
from clients.sms_client import SmsClient, SmsGatewayError, format_australian_phone
from clients.stripe_client import (
    StripeClient,
    PaymentGatewayError,
    WebhookSignatureError,
    verify_webhook_signature,
)
