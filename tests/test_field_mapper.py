"""
Field Mapper Tests

Maps records against the shipped cover sheet layout and checks the
positioned instructions that come out.

Run with: python -m pytest tests/test_field_mapper.py -v
"""

import pytest

from conftest import sample_payload
from services.documents import (
    AgentRole, FieldMapper, LayoutLoader, Party, TransactionRecord, map_record
)
from services.documents.transforms import apply_transform, sanitize_text


def by_text(instructions):
    return {i.text: i for i in instructions}


class TestRoleVariants:
    """The agent's role picks party slots and variant fields."""

    def test_seller_side_renders_seller_slot_only(self, seller_record):
        texts = by_text(FieldMapper.map(seller_record))

        assert 'Sam Seller' in texts
        assert texts['Sam Seller'].x == 340
        assert texts['Sam Seller'].bold
        assert 'Bea Buyer' not in texts

    def test_buyer_side_renders_buyer_slot_only(self):
        record = TransactionRecord.from_dict(sample_payload(role='buyersAgent'))
        texts = by_text(FieldMapper.map(record))

        assert 'Bea Buyer' in texts
        assert texts['Bea Buyer'].x == 70
        assert 'Sam Seller' not in texts
        assert 'BUYERS AGENT' in texts

    def test_dual_renders_both_slots(self):
        record = TransactionRecord.from_dict(sample_payload(role='Dual Agent'))
        texts = by_text(FieldMapper.map(record))

        assert 'Sam Seller' in texts
        assert 'Bea Buyer' in texts
        assert 'DUAL AGENT' in texts

    def test_variant_fields_follow_role(self, seller_record):
        instructions = FieldMapper.map(seller_record)
        paid = [i for i in instructions if i.text == '$10500']

        # Seller-paid amount on page 1 and in the page 2 summary
        assert sorted(i.page for i in paid) == [0, 1]
        assert all(i.y in (279.24, 513) for i in paid)

    def test_unrecognized_role_uses_buyer_layout(self):
        record = TransactionRecord.from_dict(sample_payload(role='team lead'))
        assert record.agent.role is AgentRole.BUYER_SIDE
        assert 'Bea Buyer' in by_text(FieldMapper.map(record))


class TestPartySelection:
    """Tag match first, then positional fallback."""

    def test_untagged_parties_fall_back_to_position_for_seller(self):
        payload = sample_payload()
        payload['clients'] = [
            {'name': 'First Person', 'email': 'first@test.com'},
            {'name': 'Second Person', 'email': 'second@test.com'},
        ]
        record = TransactionRecord.from_dict(payload)
        texts = by_text(FieldMapper.map(record))

        assert 'First Person' in texts
        assert texts['First Person'].x == 340
        assert texts['First Person'].y == 480.06
        assert 'Second Person' not in texts

    def test_tag_match_beats_position(self):
        parties = (Party(name='Buyer One', role_tag='BUYER'), Party(name='Seller One', role_tag='SELLER'))
        assert FieldMapper.select_party(parties, 'seller').name == 'Seller One'
        assert FieldMapper.select_party(parties, 'buyer').name == 'Buyer One'

    def test_first_tagged_party_wins(self):
        parties = (Party(name='Seller A', role_tag='SELLER'), Party(name='Seller B', role_tag='Seller 2'))
        assert FieldMapper.select_party(parties, 'seller').name == 'Seller A'

    def test_buyer_fallback_is_second_party(self):
        parties = (Party(name='One'), Party(name='Two'))
        assert FieldMapper.select_party(parties, 'buyer').name == 'Two'

    def test_no_party_for_slot(self):
        assert FieldMapper.select_party((Party(name='Only'),), 'buyer') is None
        assert FieldMapper.select_party((), 'seller') is None


class TestFormatting:
    """Values are formatted here, never in the assembler."""

    def test_currency_is_dollar_integer(self, seller_record):
        texts = by_text(FieldMapper.map(seller_record))
        assert '$350000' in texts
        assert texts['$350000'].y == 680.52

    def test_closing_date_short_format(self, seller_record):
        assert '01/15/2026' in by_text(FieldMapper.map(seller_record))

    def test_prefix_applied(self, seller_record):
        assert 'Municipality: Mt. Lebanon' in by_text(FieldMapper.map(seller_record))

    def test_exotic_spaces_are_sanitized(self):
        payload = sample_payload()
        payload['propertyData']['address'] = '123\u00a0Main\u202fSt\u2003'
        record = TransactionRecord.from_dict(payload)
        assert '123 Main St' in by_text(FieldMapper.map(record))

    def test_transforms(self):
        assert apply_transform('350,000', 'currency') == '$350000'
        assert apply_transform('2.5', 'percent') == '2.5%'
        assert apply_transform(6, 'percent') == '6%'
        assert apply_transform('2026-01-15', 'date_short') == '01/15/2026'
        assert apply_transform(AgentRole.SELLER_SIDE, 'role_label') == 'LISTING AGENT'
        assert apply_transform('pending', 'uppercase') == 'PENDING'
        assert sanitize_text(None) == ''

    @pytest.mark.parametrize('value', ['1e400', 'Infinity', 'NaN', float('inf')])
    def test_non_finite_numbers_fall_back_to_text(self, value):
        assert apply_transform(value, 'currency') == sanitize_text(value)
        assert apply_transform(value, 'percent') == sanitize_text(value)

    def test_non_finite_sale_price_still_maps(self):
        payload = sample_payload()
        payload['propertyData']['salePrice'] = '1e400'
        instructions = by_text(FieldMapper.map(TransactionRecord.from_dict(payload)))

        assert '1e400' in instructions
        assert '123 Main St, Pittsburgh, PA' in instructions


class TestEmptyValues:
    """Empty sources produce no instruction and no placeholder."""

    def test_missing_fields_emit_nothing(self):
        record = TransactionRecord.from_dict({'propertyData': {'address': '1 Lone Rd'}})
        instructions = FieldMapper.map(record)

        assert [i.text for i in instructions] == ['1 Lone Rd', 'BUYERS AGENT']

    def test_referral_fields_need_referral_flag(self):
        payload = sample_payload()
        payload['commissionData'].update({'referralParty': 'Other Realty', 'referralFee': '25%'})

        without_flag = by_text(FieldMapper.map(TransactionRecord.from_dict(payload)))
        assert 'Other Realty' not in without_flag

        payload['commissionData']['isReferral'] = 'YES'
        with_flag = by_text(FieldMapper.map(TransactionRecord.from_dict(payload)))
        assert 'Other Realty' in with_flag
        assert with_flag['Other Realty'].y == 43.99


class TestPurity:

    def test_map_is_deterministic(self, seller_record):
        assert FieldMapper.map(seller_record) == FieldMapper.map(seller_record)

    def test_map_does_not_mutate_record(self, seller_record):
        before = seller_record.to_dict()
        map_record(seller_record)
        assert seller_record.to_dict() == before

    def test_explicit_layout_is_used(self, seller_record):
        layout = LayoutLoader.get_or_raise('cover-sheet')
        assert FieldMapper.map(seller_record, layout) == FieldMapper.map(seller_record)


class TestPathResolution:

    @pytest.fixture(autouse=True)
    def setup(self, seller_record):
        self.context = FieldMapper.build_context(seller_record)

    def test_dotted_path(self):
        assert FieldMapper.resolve_path('property.listing_id', self.context) == 'MLS12345'

    def test_bracket_path(self):
        assert FieldMapper.resolve_path('parties[1].email', self.context) == 'bea@buyer.test'

    def test_out_of_range_index_returns_none(self):
        assert FieldMapper.resolve_path('parties[5].email', self.context) is None

    def test_missing_path_returns_none(self):
        assert FieldMapper.resolve_path('property.nonexistent', self.context) is None
        assert FieldMapper.resolve_path(None, self.context) is None
