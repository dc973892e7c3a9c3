"""
Supabase Storage Service for Transaction Documents

Handles document uploads and URL generation using Supabase Storage.
Files are stored privately and shared via long-lived signed URLs.
"""

import logging
import os
import re
from typing import Optional

from supabase import create_client, Client

from services.documents.exceptions import DeliveryChannelError

logger = logging.getLogger(__name__)

# Supabase client singleton
_supabase_client: Client = None

# Bucket names
TRANSACTION_DOCUMENTS_BUCKET = 'transaction-documents'

# Signed URLs are written onto the record; one week
SIGNED_URL_TTL = 7 * 24 * 3600


def get_supabase_client() -> Client:
    """
    Get or create the Supabase client.
    Uses SUPABASE_URL and SUPABASE_KEY from environment.
    """
    global _supabase_client

    if _supabase_client is None:
        supabase_url = os.getenv('SUPABASE_URL')
        supabase_key = os.getenv('SUPABASE_KEY')

        if not supabase_url or not supabase_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_KEY environment variables are required. "
                "Get these from your Supabase project settings."
            )

        _supabase_client = create_client(supabase_url, supabase_key)

    return _supabase_client


def transaction_document_name(listing_id: Optional[str]) -> str:
    """
    File name for a transaction's cover sheet.

    Examples:
        "MLS12345" -> "transaction-MLS12345.pdf"
        None -> "transaction-unknown.pdf"
    """
    listing = re.sub(r'[^A-Za-z0-9_-]', '', listing_id or '') or 'unknown'
    return f"transaction-{listing}.pdf"


def generate_transaction_storage_path(record_id: str, listing_id: Optional[str]) -> str:
    """
    Deterministic storage path for a transaction document.

    Re-submitting the same record overwrites the same object instead of
    creating a new one.
    """
    return f"transactions/{record_id}/{transaction_document_name(listing_id)}"


def upload_file(bucket: str, storage_path: str, file_data: bytes, content_type: str = None, upsert: bool = False) -> dict:
    """
    Upload a file to a Supabase Storage bucket.

    Returns:
        dict with 'path', 'filename', 'size' keys on success

    Raises:
        Exception on upload failure
    """
    client = get_supabase_client()

    file_options = {}
    if content_type:
        file_options['content-type'] = content_type
    if upsert:
        file_options['upsert'] = 'true'

    client.storage.from_(bucket).upload(
        path=storage_path,
        file=file_data,
        file_options=file_options
    )

    return {
        'path': storage_path,
        'filename': storage_path.rsplit('/', 1)[-1],
        'size': len(file_data)
    }


def get_signed_url(bucket: str, storage_path: str, expires_in: int = 3600) -> str:
    """
    Generate a signed URL for private file access.

    Args:
        bucket: Bucket name containing the file
        storage_path: The path to the file in storage
        expires_in: URL expiry time in seconds (default: 1 hour)
    """
    client = get_supabase_client()

    response = client.storage.from_(bucket).create_signed_url(
        path=storage_path,
        expires_in=expires_in
    )

    return response['signedURL']


class SupabaseDocumentStore:
    """
    Object storage channel for the delivery orchestrator.

    Wraps the module functions and turns any Supabase failure into a
    DeliveryChannelError.
    """

    channel = 'storage'

    def __init__(self, bucket: str = TRANSACTION_DOCUMENTS_BUCKET, url_ttl: int = SIGNED_URL_TTL):
        self.bucket = bucket
        self.url_ttl = url_ttl

    def upload_transaction_document(self, record_id: str, listing_id: Optional[str], data: bytes) -> str:
        """
        Upload a cover sheet and return a retrievable URL.

        Raises:
            DeliveryChannelError: if the upload or URL signing fails
        """
        storage_path = generate_transaction_storage_path(record_id, listing_id)
        try:
            upload_file(self.bucket, storage_path, data, content_type='application/pdf', upsert=True)
            url = get_signed_url(self.bucket, storage_path, expires_in=self.url_ttl)
        except Exception as e:
            logger.error(f"Failed to store {storage_path} in bucket {self.bucket}: {e}")
            raise DeliveryChannelError(f"Storage upload failed: {e}", channel=self.channel)

        logger.info(f"Stored {len(data)} bytes at {self.bucket}/{storage_path}")
        return url
