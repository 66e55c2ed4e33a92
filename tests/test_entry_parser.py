from decimal import Decimal

import pytest

from models.deduction import DeductionCategory, DeductionEntry
from models.errors import ValidationError
from processors.entry_parser import (
    calculate_total_amount,
    parse_all_entries,
    parse_entries,
    resolve_total_amount,
)


def test_parses_structured_and_text_entry_lists_the_same():
    structured = parse_entries([{'amount': 100, 'partyName': 'Om Traders'}])
    from_text = parse_entries('[{"amount": 100, "partyName": "Om Traders"}]')

    assert structured == from_text
    assert structured[0].amount == Decimal('100.00')
    assert structured[0].party_name == 'Om Traders'


def test_pan_is_normalized_to_upper_case():
    entries = parse_entries([{'amount': '50.5', 'partyName': 'X', 'pan': 'abcde1234f'}])
    assert entries[0].pan == 'ABCDE1234F'
    assert entries[0].amount == Decimal('50.50')


def test_amounts_are_rounded_to_cents():
    entries = parse_entries([{'amount': '10.005'}, {'amount': 0.1}])
    assert [e.amount for e in entries] == [Decimal('10.01'), Decimal('0.10')]


def test_lenient_mode_defaults_bad_amounts_to_zero():
    entries = parse_entries([{'partyName': 'A'}, {'amount': 'abc'}, {'amount': ''}])
    assert [e.amount for e in entries] == [Decimal('0.00')] * 3


def test_lenient_mode_ignores_malformed_text_and_non_objects():
    assert parse_entries('not json') == []
    assert parse_entries('{"amount": 5}') == []
    assert parse_entries([5, 'x', {'amount': 7}]) == [DeductionEntry(amount=Decimal('7.00'))]


def test_missing_lists_are_empty():
    assert parse_entries(None) == []
    assert parse_entries('') == []
    assert parse_entries('[]') == []


@pytest.mark.parametrize('raw', [
    [{'partyName': 'A'}],
    [{'amount': 'abc'}],
    'not json',
    [5],
    {'amount': 5},
])
def test_strict_mode_rejects_what_lenient_mode_tolerates(raw):
    with pytest.raises(ValidationError):
        parse_entries(raw, strict=True)


def test_negative_amounts_are_always_rejected():
    with pytest.raises(ValidationError):
        parse_entries([{'amount': -1}])
    with pytest.raises(ValidationError):
        parse_entries([{'amount': -1}], strict=True)


def test_parse_all_entries_covers_every_category():
    payload = {
        'gstEntries': [{'amount': 100}],
        'itEntries': '[{"amount": 20, "pan": "ABCDE1234F"}]',
    }
    entries = parse_all_entries(payload)

    assert set(entries) == set(DeductionCategory)
    assert len(entries[DeductionCategory.GST]) == 1
    assert entries[DeductionCategory.IT][0].pan == 'ABCDE1234F'
    assert entries[DeductionCategory.ROYALTY] == []


def test_total_is_computed_from_entries_when_absent():
    entries = parse_all_entries({
        'gstEntries': [{'amount': 100}, {'amount': 250}],
        'royaltyEntries': [{'amount': '0.25'}],
    })
    assert calculate_total_amount(entries) == Decimal('350.25')
    assert resolve_total_amount(None, entries) == Decimal('350.25')
    assert resolve_total_amount('', entries) == Decimal('350.25')
    assert resolve_total_amount([], entries) == Decimal('350.25')
    assert resolve_total_amount(0, entries) == Decimal('350.25')


def test_client_total_takes_precedence_over_entry_sum():
    entries = parse_all_entries({'gstEntries': [{'amount': 100}, {'amount': 250}]})
    assert resolve_total_amount(500, entries) == Decimal('500.00')
    assert resolve_total_amount('499.99', entries) == Decimal('499.99')


def test_list_shaped_total_uses_first_element():
    entries = parse_all_entries({'gstEntries': [{'amount': 1}]})
    assert resolve_total_amount(['700', '800'], entries) == Decimal('700.00')


@pytest.mark.parametrize('raw_total', ['abc', -5, ['x']])
def test_invalid_client_total_is_rejected(raw_total):
    entries = parse_all_entries({'gstEntries': [{'amount': 1}]})
    with pytest.raises(ValidationError):
        resolve_total_amount(raw_total, entries)
