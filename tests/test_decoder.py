"""
Tests for batch and streaming table decoding.

Verifies that:
- Checksums are SHA-256 over decompressed bytes, identical for plain and gzip
- Parsing is header driven with relaxed column counts and trimmed cells
- Streaming filters by season and projects columns chunk by chunk
- Corrupt or truncated gzip raises ParseError
"""
from __future__ import annotations

import asyncio
import hashlib

import numpy as np
import pytest

from gridfeed.acquisition.decoder import TableDecoder, decode_payload, stream_decode, url_implies_gzip
from gridfeed.acquisition.resilience import RetryConfig
from gridfeed.acquisition.transport import HttpTransport
from gridfeed.core.errors import ParseError, TransientNetworkError
from tests.fakes import FakeResponse, FakeSession, csv_bytes, gzip_bytes

PLAIN = b"season,week,team,points\n2024, 1 ,KC,27\n\n2024,2,BUF,\n"


def _chunks(data: bytes, size: int = 7):
    return [data[i : i + size] for i in range(0, len(data), size)]


class TestBatchDecode:
    def test_rows_are_trimmed_and_blank_cells_are_none(self):
        table = decode_payload(PLAIN, "https://x/test.csv")

        assert table.rows == [
            {"season": "2024", "week": "1", "team": "KC", "points": "27"},
            {"season": "2024", "week": "2", "team": "BUF", "points": None},
        ]
        assert table.checksum == hashlib.sha256(PLAIN).hexdigest()
        assert table.source == "https://x/test.csv"

    def test_gzip_checksum_matches_plain(self):
        plain = decode_payload(PLAIN, "https://x/a.csv")
        by_suffix = decode_payload(gzip_bytes(PLAIN), "https://x/a.csv.gz")
        by_magic = decode_payload(gzip_bytes(PLAIN), "https://x/a.csv")

        assert by_suffix.rows == plain.rows
        assert by_suffix.checksum == plain.checksum == by_magic.checksum

    def test_checksum_is_deterministic(self):
        assert decode_payload(PLAIN, "u").checksum == decode_payload(PLAIN, "u").checksum

    def test_relaxed_column_counts(self):
        data = b"a,b,c\n1,2,3,4\n5,6\n"

        rows = decode_payload(data, "https://x/r.csv").rows

        assert rows[0] == {"a": "1", "b": "2", "c": "3"}
        assert rows[1]["a"] == "5"
        assert rows[1]["b"] == "6"
        assert rows[1]["c"] is None

    def test_empty_payload_yields_no_rows(self):
        assert decode_payload(b"", "https://x/empty.csv").rows == []

    def test_corrupt_gzip_is_parse_error(self):
        with pytest.raises(ParseError) as exc_info:
            decode_payload(b"\x1f\x8bnot really gzip", "https://x/bad.csv.gz")
        assert exc_info.value.url == "https://x/bad.csv.gz"

    def test_url_implies_gzip_ignores_query(self):
        assert url_implies_gzip("https://x/p.csv.gz?raw=1")
        assert not url_implies_gzip("https://x/p.csv")


class TestStreamingDecode:
    DATA = csv_bytes(
        ["season", "week", "play_id", "desc"],
        [(2023, 18, 1, "old"), (2024, 1, 2, "kick"), (2024, 1, 3, "run"), (2023, 1, 4, "x"), (2024, 2, 5, "pass")],
    )

    def test_filters_season_and_projects_columns(self):
        table = stream_decode(
            _chunks(gzip_bytes(self.DATA)),
            "https://x/play_by_play_2024.csv.gz",
            season=2024,
            columns=("season", "play_id"),
            chunk_rows=2,
        )

        assert table.rows == [
            {"season": "2024", "play_id": "2"},
            {"season": "2024", "play_id": "3"},
            {"season": "2024", "play_id": "5"},
        ]
        assert table.checksum == hashlib.sha256(self.DATA).hexdigest()

    def test_without_season_keeps_every_row(self):
        table = stream_decode(_chunks(self.DATA), "https://x/plain.csv", chunk_rows=3)

        assert len(table.rows) == 5
        assert table.checksum == hashlib.sha256(self.DATA).hexdigest()

    def test_truncated_gzip_stream_is_parse_error(self):
        truncated = gzip_bytes(self.DATA)[:-12]

        with pytest.raises(ParseError):
            stream_decode(_chunks(truncated), "https://x/p.csv.gz", season=2024)

    def test_decoder_streams_through_transport_and_closes_response(self):
        url = "https://x/play_by_play_2024.csv.gz"
        response = FakeResponse(200, gzip_bytes(self.DATA), chunk_size=16)
        session = FakeSession({url: response})
        transport = HttpTransport(session, retry_config=RetryConfig(attempts=1), rng=np.random.default_rng(0))

        table = asyncio.run(TableDecoder(transport, chunk_rows=2).decode_streaming(url, 2023))

        assert [r["play_id"] for r in table.rows] == ["1", "4"]
        assert response.closed
        assert session.calls[0]["stream"] is True

    def test_gzip_detected_by_magic_bytes_without_gz_suffix(self):
        table = stream_decode(_chunks(gzip_bytes(self.DATA)), "https://x/download?id=pbp", season=2024)

        assert [r["play_id"] for r in table.rows] == ["2", "3", "5"]
        assert table.checksum == hashlib.sha256(self.DATA).hexdigest()

    def test_reset_mid_body_restarts_the_stream(self):
        url = "https://x/play_by_play_2024.csv.gz"
        payload = gzip_bytes(self.DATA)
        broken = FakeResponse(200, payload, chunk_size=8, fail_after=20)
        good = FakeResponse(200, payload, chunk_size=8)
        session = FakeSession({url: [broken, good]})

        async def _no_sleep(_):
            return None

        transport = HttpTransport(
            session, retry_config=RetryConfig(attempts=3), sleep=_no_sleep, rng=np.random.default_rng(0)
        )

        table = asyncio.run(TableDecoder(transport).decode_streaming(url, 2024))

        assert [r["play_id"] for r in table.rows] == ["2", "3", "5"]
        assert table.checksum == hashlib.sha256(self.DATA).hexdigest()
        assert session.calls_to(url) == 2
        assert broken.closed and good.closed

    def test_reset_on_every_attempt_surfaces_transient_error(self):
        url = "https://x/play_by_play_2024.csv.gz"
        session = FakeSession({url: FakeResponse(200, gzip_bytes(self.DATA), fail_after=20)})

        async def _no_sleep(_):
            return None

        transport = HttpTransport(
            session, retry_config=RetryConfig(attempts=2), sleep=_no_sleep, rng=np.random.default_rng(0)
        )

        with pytest.raises(TransientNetworkError):
            asyncio.run(TableDecoder(transport).decode_streaming(url, 2024))
        assert session.calls_to(url) == 2
