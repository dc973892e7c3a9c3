import os

from dotenv import load_dotenv

load_dotenv()


def _csv(value):
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    # Environment
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')

    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Airtable (system of record)
    AIRTABLE_API_KEY = os.getenv('AIRTABLE_API_KEY')
    AIRTABLE_BASE_ID = os.getenv('AIRTABLE_BASE_ID')
    AIRTABLE_TRANSACTIONS_TABLE = os.getenv('AIRTABLE_TRANSACTIONS_TABLE', 'Transactions')
    AIRTABLE_CLIENTS_TABLE = os.getenv('AIRTABLE_CLIENTS_TABLE', 'Clients')
    AIRTABLE_ATTACHMENT_FIELDS = _csv(os.getenv('AIRTABLE_ATTACHMENT_FIELDS', 'PDF Attachment,fldhrYdoFwtNfzdFY'))
    AIRTABLE_NOTES_FIELD = os.getenv('AIRTABLE_NOTES_FIELD', 'Additional Notes')
    RECORD_STORE_MAX_RETRIES = int(os.getenv('RECORD_STORE_MAX_RETRIES', 3))
    RECORD_STORE_RETRY_DELAY = float(os.getenv('RECORD_STORE_RETRY_DELAY', 1.0))

    # Supabase Storage
    SUPABASE_URL = os.getenv('SUPABASE_URL')
    SUPABASE_KEY = os.getenv('SUPABASE_KEY')
    TRANSACTION_DOCUMENTS_BUCKET = os.getenv('TRANSACTION_DOCUMENTS_BUCKET', 'transaction-documents')

    # Mail settings
    MAIL_SERVER = os.getenv('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('MAIL_PORT', 587))
    MAIL_USE_TLS = os.getenv('MAIL_USE_TLS', 'True').lower() == 'true'
    MAIL_USERNAME = os.getenv('MAIL_USERNAME')
    MAIL_PASSWORD = os.getenv('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.getenv('MAIL_DEFAULT_SENDER', 'noreply@example.com')
    MAIL_MAX_EMAILS = None
    MAIL_ASCII_ATTACHMENTS = False
    TRANSACTION_EMAIL_RECIPIENT = os.getenv('TRANSACTION_EMAIL_RECIPIENT')

    # SendGrid configuration
    SENDGRID_API_KEY = os.getenv('SENDGRID_API_KEY')

    # Cover sheet template; path wins when both are set
    TRANSACTION_TEMPLATE_PATH = os.getenv('TRANSACTION_TEMPLATE_PATH')
    TRANSACTION_TEMPLATE_URL = os.getenv('TRANSACTION_TEMPLATE_URL')

    # Rendering
    RENDER_SERVICE_URL = os.getenv('RENDER_SERVICE_URL')
    RENDER_SHARED_SECRET = os.getenv('RENDER_SHARED_SECRET')
    RENDER_TIMEOUT_SECONDS = float(os.getenv('RENDER_TIMEOUT_SECONDS', 30))

    # Attachment size governor
    ATTACHMENT_CEILING_BYTES = int(os.getenv('ATTACHMENT_CEILING_BYTES', 1024 * 1024))
    ATTACHMENT_TRUNCATION_MARGIN = float(os.getenv('ATTACHMENT_TRUNCATION_MARGIN', 0.10))
    COMPRESSION_ROUNDS = int(os.getenv('COMPRESSION_ROUNDS', 3))
