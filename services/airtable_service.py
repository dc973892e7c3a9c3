"""
Airtable Record Store

Creates transaction and client records in Airtable through the REST API
and attaches generated documents to the transaction record.

Field identifiers are Airtable field IDs so renaming a column in the
base does not break submissions.
"""

import base64
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests

from services.documents.exceptions import RecordStoreError
from services.documents.transforms import ROLE_LABELS
from services.documents.types import Party, PartyError, TransactionRecord

logger = logging.getLogger(__name__)

AIRTABLE_API_URL = 'https://api.airtable.com/v0'
AIRTABLE_CONTENT_URL = 'https://content.airtable.com/v0'

# Request timeout
DEFAULT_TIMEOUT = 30

DEFAULT_ATTACHMENT_FIELDS = ('PDF Attachment', 'fldhrYdoFwtNfzdFY')

# Transaction table field IDs
TRANSACTION_FIELDS = {
    # Agent information
    'agent_role': 'fldOVyoxz38rWwAFy',
    'agent_name': 'fldFD4xHD0vxnSOHJ',

    # Property data
    'listing_id': 'fld6O2FgIXQU5G27o',
    'address': 'fldypnfnHhplWYcCW',
    'sale_price': 'fldhHjBZJISmnP8SK',
    'status': 'fldV2eLxz6w0TpLFU',
    'is_winterized': 'fldExdgBDgdB1i9jy',
    'update_mls': 'fldw3GlfvKtyNfIAW',
    'access_type': 'fld7TTQpaC83ehY7H',
    'lockbox_code': 'fldrh8eB5V8TjSZlR',
    'property_type': 'fldzM4oyw2PyKt887',
    'built_before_1978': 'fldZmPfpsSJLOtcYr',
    'closing_date': 'fldacjkqtnbdTUUTx',

    # Commission data
    'total_percentage': 'fldE8INzEorBtx2uN',
    'listing_agent_percentage': 'flduuQQT7o6XAGlRe',
    'buyers_agent_percentage': 'fld5KRrToAAt5kOLd',
    'seller_paid_amount': 'flddRltdGj05Clzpa',
    'buyer_paid_amount': 'fldO6MAwuLTvuFjui',
    'sellers_assist': 'fldTvXx96Na0zRh6W',
    'referral_party': 'fldzVtmn8uylVxuTF',
    'referral_fee': 'fldewmjoaJVwiMF46',
    'broker_ein': 'fld20VbKbWzdR4Sp7',
    'coordinator_fee_paid_by': 'fldrplBqdhDcoy04S',

    # Property details
    'hoa_name': 'fld9oG6SMAkh4hvNL',
    'municipality': 'fld9Qw4mGeI9kk42F',
    'first_right_name': 'fldeHKiUreeDs5n4o',
    'attorney_name': 'fld4YZ0qKHvRLK4Xg',
    'warranty_company': 'fldRtNEH89tNNX52B',
    'warranty_cost': 'fldxH1pCpohty1e2b',
    'warranty_paid_by': 'fld61RStU7sCDrG01',

    # Title and notes
    'title_company': 'fldqeArDeRkxiYz9u',
    'special_instructions': 'fldDWN8jU4kdCffzu',
    'urgent_issues': 'fldgW16aPdFMdspO6',
    'additional_notes': 'fld30htJ7euVerCLW',
}

# Client table field IDs
CLIENT_FIELDS = {
    'name': 'fldSqxNOZ9B5PgSab',
    'email': 'flddP6a8EG6qTJdIi',
    'phone': 'fldBnh8W6iGW014yY',
    'client_address': 'fldz1IpeR1256LhuC',   # the client's own address
    'address': 'fldx7IEsPmHTJXDYS',          # property address, joins to Transactions
    'marital_status': 'fldeK6mjSfxELU0MD',
    'type': 'fldSY6vbE1zAhJZqd',
}

NUMBER_FIELDS = {
    'sale_price', 'total_percentage', 'listing_agent_percentage', 'buyers_agent_percentage',
    'seller_paid_amount', 'buyer_paid_amount', 'sellers_assist', 'referral_fee', 'warranty_cost',
}
UPPERCASE_FIELDS = {'status', 'property_type', 'access_type', 'coordinator_fee_paid_by'}

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass
class TransactionCreateResult:
    """Outcome of creating one transaction and its client records."""
    record_id: str
    party_record_ids: List[str] = field(default_factory=list)
    party_errors: List[PartyError] = field(default_factory=list)


def _number(value: str) -> Optional[float]:
    try:
        number = float(str(value).replace('$', '').replace(',', '').replace('%', '').strip())
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number == int(number) else number


class AirtableService:
    """
    Record store client for the delivery orchestrator.

    Usage:
        store = AirtableService(api_key, base_id)
        result = store.create_transaction(record)
        store.attach_document(result.record_id, pdf_bytes, 'Transaction_123_Main_St_2026-01-15.pdf')
    """

    def __init__(
        self,
        api_key: str,
        base_id: str,
        transactions_table: str = 'Transactions',
        clients_table: str = 'Clients',
        attachment_fields: Sequence[str] = DEFAULT_ATTACHMENT_FIELDS,
        notes_field: str = 'Additional Notes',
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: int = DEFAULT_TIMEOUT,
        session: requests.Session = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        if not api_key or not base_id:
            raise RecordStoreError("AIRTABLE_API_KEY and AIRTABLE_BASE_ID are required")
        self.api_key = api_key
        self.base_id = base_id
        self.transactions_table = transactions_table
        self.clients_table = clients_table
        self.attachment_fields = tuple(attachment_fields)
        self.notes_field = notes_field
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.session = session or requests.Session()
        self._sleep = sleep

    def _get_headers(self) -> Dict[str, str]:
        """Get request headers with auth."""
        return {
            'Authorization': f"Bearer {self.api_key}",
            'Content-Type': 'application/json'
        }

    # =========================================================================
    # Field mapping
    # =========================================================================

    @classmethod
    def build_transaction_fields(cls, record: TransactionRecord) -> Dict[str, Any]:
        """
        Map a record to Transactions table fields.

        Empty values are left out; numbers are sent as numbers and flags
        as the base's option labels.
        """
        prop = record.property
        commission = record.commission
        details = record.details
        values = {
            'agent_role': ROLE_LABELS[record.agent.role],
            'agent_name': record.agent.name,
            'listing_id': prop.listing_id,
            'address': prop.address,
            'sale_price': prop.sale_price,
            'status': prop.status,
            'access_type': prop.access_type,
            'lockbox_code': prop.lockbox_code,
            'property_type': prop.property_type,
            'closing_date': prop.closing_date,
            'total_percentage': commission.total_percentage,
            'listing_agent_percentage': commission.listing_agent_percentage,
            'buyers_agent_percentage': commission.buyers_agent_percentage,
            'seller_paid_amount': commission.seller_paid_amount,
            'buyer_paid_amount': commission.buyer_paid_amount,
            'sellers_assist': commission.sellers_assist,
            'coordinator_fee_paid_by': commission.coordinator_fee_paid_by,
            'hoa_name': details.hoa_name,
            'municipality': details.municipality,
            'first_right_name': details.first_right_name,
            'attorney_name': details.attorney_name,
            'warranty_company': details.warranty_company,
            'warranty_cost': details.warranty_cost,
            'warranty_paid_by': details.warranty_paid_by,
            'title_company': record.title.name,
            'special_instructions': record.notes.special_instructions,
            'urgent_issues': record.notes.urgent_issues,
            'additional_notes': record.notes.additional_notes,
        }
        if commission.is_referral:
            values['referral_party'] = commission.referral_party
            values['referral_fee'] = commission.referral_fee
            values['broker_ein'] = commission.broker_ein

        fields = {
            TRANSACTION_FIELDS['is_winterized']: 'WINTERIZED' if prop.is_winterized else 'NOT WINTERIZED',
            TRANSACTION_FIELDS['update_mls']: 'YES' if prop.update_mls else 'NO',
            TRANSACTION_FIELDS['built_before_1978']: 'YES' if prop.built_before_1978 else 'NO',
        }
        for key, value in values.items():
            if value is None or value == '':
                continue
            if key in NUMBER_FIELDS:
                number = _number(value)
                if number is None:
                    logger.warning(f"Skipping non-numeric value for {key}: {value!r}")
                    continue
                value = number
            elif key in UPPERCASE_FIELDS:
                value = str(value).upper()
            fields[TRANSACTION_FIELDS[key]] = value
        return fields

    @classmethod
    def build_client_fields(cls, party: Party, property_address: Optional[str]) -> Dict[str, Any]:
        """Map a party to Clients table fields, joined on the property address."""
        values = {
            'name': party.name,
            'email': party.email,
            'phone': party.phone,
            'client_address': party.address,
            'address': property_address,
            'marital_status': party.marital_status,
            'type': party.role_tag.upper() if party.role_tag else None,
        }
        return {CLIENT_FIELDS[k]: v for k, v in values.items() if v}

    # =========================================================================
    # Record operations
    # =========================================================================

    def create_transaction(self, record: TransactionRecord) -> TransactionCreateResult:
        """
        Create the transaction record, then one client record per party.

        Client failures are collected per party and never abort the
        submission.

        Raises:
            RecordStoreError: if the transaction record cannot be created
        """
        body = {'fields': self.build_transaction_fields(record), 'typecast': True}
        created = self._request('POST', self._table_url(self.transactions_table), json=body)
        result = TransactionCreateResult(record_id=created['id'])
        logger.info(f"Created transaction record {result.record_id}")

        for party in record.parties:
            try:
                client = self._request(
                    'POST',
                    self._table_url(self.clients_table),
                    json={'fields': self.build_client_fields(party, record.property.address), 'typecast': True}
                )
                result.party_record_ids.append(client['id'])
            except RecordStoreError as e:
                logger.error(f"Error creating client record for {party.name or 'Unknown client'}: {e}")
                result.party_errors.append(PartyError(party=party.name or 'Unknown client', error=str(e)))

        if result.party_errors:
            logger.warning(f"Completed with {len(result.party_errors)} client record error(s)")
        return result

    def attach_document(self, record_id: str, data: bytes, filename: str) -> str:
        """
        Upload document bytes into the record's attachment field.

        Candidate field identifiers are tried in order; each one gets up
        to max_retries attempts on rate limits and server errors.

        Returns:
            The field identifier that accepted the attachment

        Raises:
            RecordStoreError: if no candidate field accepts it
        """
        body = {
            'contentType': 'application/pdf',
            'file': base64.b64encode(data).decode('ascii'),
            'filename': filename,
        }
        last_error = None
        for field_id in self.attachment_fields:
            url = f"{AIRTABLE_CONTENT_URL}/{self.base_id}/{record_id}/{quote(field_id, safe='')}/uploadAttachment"
            for attempt in range(1, self.max_retries + 1):
                try:
                    self._request('POST', url, json=body)
                    logger.info(f"Attached {len(data)} bytes to {record_id} via field '{field_id}'")
                    return field_id
                except RecordStoreError as e:
                    last_error = e
                    logger.warning(
                        f"Attachment to field '{field_id}' failed "
                        f"(attempt {attempt}/{self.max_retries}): {e}"
                    )
                    if e.status_code not in RETRYABLE_STATUS and e.status_code is not None:
                        break
                    if attempt < self.max_retries:
                        self._sleep(self.retry_delay)

        raise RecordStoreError(
            f"No attachment field accepted the document: {last_error}",
            status_code=last_error.status_code if last_error else None,
            response_body=last_error.response_body if last_error else None
        )

    def attach_url(self, record_id: str, url: str, filename: str) -> str:
        """
        Link an externally stored document into the attachment field.

        Returns:
            The field identifier that accepted the link

        Raises:
            RecordStoreError: if no candidate field accepts it
        """
        last_error = None
        for field_id in self.attachment_fields:
            try:
                self._request(
                    'PATCH',
                    f"{self._table_url(self.transactions_table)}/{record_id}",
                    json={'fields': {field_id: [{'url': url, 'filename': filename}]}}
                )
                logger.info(f"Linked stored document to {record_id} via field '{field_id}'")
                return field_id
            except RecordStoreError as e:
                last_error = e
                logger.warning(f"Linking document to field '{field_id}' failed: {e}")
        raise RecordStoreError(f"No attachment field accepted the document link: {last_error}")

    def add_note(self, record_id: str, note: str) -> None:
        """
        Append a note to the record's notes field.

        Raises:
            RecordStoreError: if the record cannot be read or updated
        """
        record_url = f"{self._table_url(self.transactions_table)}/{record_id}"
        params = {'returnFieldsByFieldId': 'true'} if self.notes_field.startswith('fld') else None
        current = self._request('GET', record_url, params=params)
        existing = (current.get('fields') or {}).get(self.notes_field) or ''
        text = f"{existing}\n\n{note}" if existing else note
        self._request('PATCH', record_url, json={'fields': {self.notes_field: text}})
        logger.info(f"Added note to {record_id}")

    # =========================================================================
    # HTTP
    # =========================================================================

    def _table_url(self, table: str) -> str:
        return f"{AIRTABLE_API_URL}/{self.base_id}/{quote(table, safe='')}"

    def _request(self, method: str, url: str, json: dict = None, params: dict = None) -> Dict[str, Any]:
        try:
            response = self.session.request(
                method,
                url,
                headers=self._get_headers(),
                json=json,
                params=params,
                timeout=self.timeout
            )
            response.raise_for_status()
            return response.json()

        except requests.exceptions.RequestException as e:
            error_body = None
            status_code = None

            if getattr(e, 'response', None) is not None:
                status_code = e.response.status_code
                error_body = e.response.text

            logger.error(f"Airtable {method} failed: {e}")
            raise RecordStoreError(
                self._error_message(status_code, error_body, e),
                status_code=status_code,
                response_body=error_body
            )

    @staticmethod
    def _error_message(status_code: Optional[int], error_body: Optional[str], error: Exception) -> str:
        if status_code == 413 or (error_body and 'too large' in error_body.lower()):
            return ("The transaction data is too large to submit. "
                    "Please try removing or reducing the size of any attachments.")
        if status_code == 429:
            return "Too many requests to Airtable. Please wait a moment and try again."
        return f"Airtable API error: {error_body or error}"
