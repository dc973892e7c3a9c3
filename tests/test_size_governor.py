"""
Attachment Size Governor Tests

Compression is injected so each outcome can be forced without
building large PDFs.

Run with: python -m pytest tests/test_size_governor.py -v
"""

import pytest

from conftest import make_pdf
from services.documents import AttachmentSizeGovernor, GovernorOutcome, SizeLimitError, compress_pdf


def shrink_by(amount):
    """Compressor that removes a fixed number of bytes per round."""
    calls = []

    def compressor(data, round_number, target_size):
        calls.append((round_number, target_size))
        return data[:max(0, len(data) - amount)]

    compressor.calls = calls
    return compressor


def no_gain(data, round_number, target_size):
    return data


class TestWithinCeiling:

    def test_unchanged_returns_same_bytes(self):
        blob = b'x' * 100
        result = AttachmentSizeGovernor(compressor=no_gain).condition(blob, ceiling=100)

        assert result.outcome is GovernorOutcome.UNCHANGED
        assert result.data is blob
        assert result.note is None

    def test_compressor_not_called_when_under(self):
        compressor = shrink_by(10)
        AttachmentSizeGovernor(compressor=compressor).condition(b'x' * 50, ceiling=100)
        assert compressor.calls == []


class TestCompression:

    def test_compressed_when_a_round_fits(self):
        compressor = shrink_by(30)
        result = AttachmentSizeGovernor(compressor=compressor).condition(b'x' * 150, ceiling=100)

        assert result.outcome is GovernorOutcome.COMPRESSED
        assert len(result.data) == 90
        assert [round_number for round_number, _ in compressor.calls] == [1, 2]

    def test_round_targets_shrink(self):
        compressor = shrink_by(1)
        AttachmentSizeGovernor(compressor=compressor).condition(b'x' * 1000, ceiling=10)
        targets = [target for _, target in compressor.calls]

        assert len(targets) == 3
        assert targets == sorted(targets, reverse=True)

    def test_failed_round_is_skipped(self):
        def flaky(data, round_number, target_size):
            if round_number == 1:
                raise RuntimeError("cannot compress")
            return data[:80]

        result = AttachmentSizeGovernor(compressor=flaky).condition(b'x' * 150, ceiling=100)
        assert result.outcome is GovernorOutcome.COMPRESSED


class TestOverCeiling:

    def test_truncated_within_margin(self):
        blob = bytes(range(256)) * 4  # 1024 bytes
        result = AttachmentSizeGovernor(compressor=shrink_by(1)).condition(blob, ceiling=1000)

        assert result.outcome is GovernorOutcome.TRUNCATED
        assert result.data == blob[:1000]
        assert result.note
        assert 'incomplete' in result.note

    def test_no_truncation_without_compression_gain(self):
        result = AttachmentSizeGovernor(compressor=no_gain).condition(b'x' * 105, ceiling=100)

        assert result.outcome is GovernorOutcome.NONE
        assert result.data is None
        assert 'file-sharing' in result.note

    def test_no_truncation_when_every_round_fails(self):
        def broken(data, round_number, target_size):
            raise RuntimeError("cannot compress")

        result = AttachmentSizeGovernor(compressor=broken).condition(b'x' * 105, ceiling=100)
        assert result.outcome is GovernorOutcome.NONE

    def test_none_with_note_when_far_over(self):
        result = AttachmentSizeGovernor(compressor=no_gain).condition(b'x' * 500, ceiling=100)

        assert result.outcome is GovernorOutcome.NONE
        assert result.data is None
        assert 'file-sharing' in result.note

    def test_never_unchanged_when_over(self):
        for size in (101, 109, 111, 1000):
            result = AttachmentSizeGovernor(compressor=no_gain).condition(b'x' * size, ceiling=100)
            assert result.outcome in (GovernorOutcome.TRUNCATED, GovernorOutcome.NONE)
            assert result.note

    def test_size_limit_error_without_note_fallback(self):
        with pytest.raises(SizeLimitError) as excinfo:
            AttachmentSizeGovernor(compressor=no_gain).condition(b'x' * 500, ceiling=100, allow_note=False)

        assert excinfo.value.size == 500
        assert excinfo.value.ceiling == 100


class TestPdfCompression:

    @pytest.mark.parametrize('round_number', [1, 2, 3])
    def test_rounds_return_readable_pdf(self, round_number):
        output = compress_pdf(make_pdf(pages=2), round_number, target_size=1000)
        assert output.startswith(b'%PDF')

    def test_real_pdf_under_ceiling(self):
        pdf = make_pdf(pages=1)
        result = AttachmentSizeGovernor().condition(pdf, ceiling=len(pdf))
        assert result.outcome is GovernorOutcome.UNCHANGED
