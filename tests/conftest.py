"""
Shared fixtures for the submission pipeline tests.

Run with: python -m pytest tests/ -v
"""

import sys
from pathlib import Path

import fitz  # PyMuPDF
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from services.documents import LayoutLoader, TransactionRecord


def make_pdf(pages=2, width=612, height=792):
    """Build a throwaway template PDF in memory."""
    doc = fitz.open()
    for _ in range(pages):
        doc.new_page(width=width, height=height)
    try:
        return doc.tobytes()
    finally:
        doc.close()


def sample_payload(role='listingAgent', **overrides):
    """Submission JSON for a complete seller-side transaction."""
    payload = {
        'agentData': {'name': 'Pat Agent', 'role': role, 'email': 'pat@agency.test'},
        'propertyData': {
            'address': '123 Main St, Pittsburgh, PA',
            'mlsNumber': 'MLS12345',
            'salePrice': '350000',
            'closingDate': '2026-01-15',
            'status': 'pending',
            'isWinterized': 'NO',
            'updateMls': 'YES',
        },
        'clients': [
            {'name': 'Sam Seller', 'email': 'sam@seller.test', 'phone': '4125550100',
             'address': '9 Elm St', 'type': 'SELLER'},
            {'name': 'Bea Buyer', 'email': 'bea@buyer.test', 'phone': '4125550199',
             'address': '1 Oak Ave', 'type': 'BUYER'},
        ],
        'commissionData': {
            'totalCommission': '6',
            'listingAgentCommission': '3',
            'buyersAgentCommission': '3',
            'sellerPaidAmount': '10500',
            'buyerPaidAmount': '10500',
        },
        'propertyDetails': {'municipality': 'Mt. Lebanon', 'hoaName': 'Elm Court HOA'},
        'titleData': {'titleCompany': 'Keystone Title'},
        'additionalInfo': {'notes': 'Keys at the office'},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def template_pdf():
    return make_pdf()


@pytest.fixture
def seller_record():
    return TransactionRecord.from_dict(sample_payload())


@pytest.fixture(autouse=True)
def reset_layouts():
    """Each test starts from a cold layout cache."""
    LayoutLoader.clear()
    yield
    LayoutLoader.clear()
