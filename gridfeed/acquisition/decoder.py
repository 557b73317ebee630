"""
Delimited-table decoding with integrity checksums.

Batch mode reads the whole payload, gunzips when needed, hashes the
decompressed bytes and parses with pandas. Streaming mode chains
  byte chunks -> incremental gunzip -> hashing reader -> chunked parser
and filters/projects each chunk before keeping it, so peak memory follows the
filtered result rather than the full decompressed table.

Parsing rules for both modes: header row defines columns, rows with extra
fields are truncated to the header width, short rows are padded with None,
cells are trimmed, blank lines skipped, blank cells become None. All values
stay strings; typing belongs to the consumers.
"""
from __future__ import annotations

import asyncio
import gzip
import hashlib
import io
import itertools
import logging
import warnings
import zlib
from contextlib import closing, contextmanager
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Tuple

import pandas as pd

from ..core.errors import ParseError, TransientNetworkError
from .base import DecodedTable, HttpResponse, Row
from .resilience import resilient_call
from .transport import HttpTransport

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
STREAM_CHUNK_BYTES = 1 << 16
DEFAULT_CHUNK_ROWS = 25_000


def url_implies_gzip(url: str) -> bool:
    return url.split("?", 1)[0].lower().endswith(".gz")


def _clean_cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, float) and value != value:
        return None
    return value


def _frame_to_rows(frame: pd.DataFrame) -> List[Row]:
    columns = [str(c).strip() for c in frame.columns]
    return [
        {col: _clean_cell(val) for col, val in zip(columns, record)}
        for record in frame.itertuples(index=False, name=None)
    ]


def _read_csv_kwargs() -> dict:
    return dict(
        dtype=object,
        keep_default_na=False,
        na_filter=False,
        skip_blank_lines=True,
        skipinitialspace=True,
        engine="python",
        # pandas cuts rows wider than the header back to the header width
        on_bad_lines=lambda fields: fields,
        index_col=False,
    )


@contextmanager
def _relaxed_columns() -> Iterator[None]:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", pd.errors.ParserWarning)
        yield


def parse_table(text_stream: Any) -> List[Row]:
    """Parse a whole delimited table from a text stream."""
    try:
        with _relaxed_columns():
            frame = pd.read_csv(text_stream, **_read_csv_kwargs())
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, UnicodeDecodeError, ValueError) as exc:
        raise ParseError(f"Malformed delimited table: {exc}") from exc
    return _frame_to_rows(frame)


def decode_payload(data: bytes, url: str) -> DecodedTable:
    """Decompress if needed, fingerprint, parse. Pure; no I/O."""
    if url_implies_gzip(url) or data[:2] == GZIP_MAGIC:
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as exc:
            raise ParseError(f"Corrupt gzip payload from {url}: {exc}", url=url) from exc
    checksum = hashlib.sha256(data).hexdigest()
    try:
        rows = parse_table(io.StringIO(data.decode("utf-8-sig")))
    except UnicodeDecodeError as exc:
        raise ParseError(f"Payload from {url} is not UTF-8: {exc}", url=url) from exc
    except ParseError as exc:
        exc.url = url
        raise
    return DecodedTable(rows=rows, checksum=checksum, source=url)


class HashingReader(io.RawIOBase):
    """
    Raw byte stream over an iterator of (possibly gzipped) chunks. Hashes the
    decompressed bytes as they are handed to the parser.
    """

    def __init__(self, chunks: Iterable[bytes], *, decompress: bool) -> None:
        super().__init__()
        self._chunks: Iterator[bytes] = iter(chunks)
        self._inflater = zlib.decompressobj(16 + zlib.MAX_WBITS) if decompress else None
        self._buffer = b""
        self._eof = False
        self._bytes_in = 0
        self._hash = hashlib.sha256()
        self.bytes_out = 0

    def readable(self) -> bool:
        return True

    def _fill(self) -> None:
        while not self._buffer and not self._eof:
            try:
                chunk = next(self._chunks)
            except StopIteration:
                if self._inflater is not None:
                    self._buffer = self._inflater.flush()
                    if self._bytes_in and not self._inflater.eof:
                        raise ParseError("Truncated gzip stream")
                self._eof = True
                break
            if not chunk:
                continue
            self._bytes_in += len(chunk)
            self._buffer = self._inflate(chunk)

    def _inflate(self, chunk: bytes) -> bytes:
        if self._inflater is None:
            return chunk
        try:
            out = self._inflater.decompress(chunk)
            # concatenated gzip members
            while self._inflater.eof and self._inflater.unused_data:
                rest = self._inflater.unused_data
                self._inflater = zlib.decompressobj(16 + zlib.MAX_WBITS)
                out += self._inflater.decompress(rest)
        except zlib.error as exc:
            raise ParseError(f"Corrupt gzip stream: {exc}") from exc
        return out

    def readinto(self, buffer: Any) -> int:
        self._fill()
        if not self._buffer:
            return 0
        n = min(len(buffer), len(self._buffer))
        piece, self._buffer = self._buffer[:n], self._buffer[n:]
        buffer[:n] = piece
        self._hash.update(piece)
        self.bytes_out += n
        return n

    def drain(self) -> None:
        """Consume and hash anything the parser did not read."""
        sink = bytearray(STREAM_CHUNK_BYTES)
        while self.readinto(sink):
            pass

    def hexdigest(self) -> str:
        return self._hash.hexdigest()


def _filter_chunk(
    frame: pd.DataFrame,
    season: Optional[int],
    season_column: str,
    columns: Sequence[str],
) -> pd.DataFrame:
    frame = frame.rename(columns=lambda c: str(c).strip())
    if season is not None and season_column in frame.columns:
        frame = frame[frame[season_column].str.strip() == str(season)]
    if columns:
        keep = [c for c in columns if c in frame.columns]
        frame = frame[keep]
    return frame


def _sniff_gzip(chunks: Iterable[bytes], url: str) -> Tuple[Iterator[bytes], bool]:
    """Peek at the first non-empty chunk; gzip when the URL or the magic bytes say so."""
    it = iter(chunks)
    for first in it:
        if first:
            return itertools.chain([first], it), url_implies_gzip(url) or first[:2] == GZIP_MAGIC
    return iter(()), url_implies_gzip(url)


def stream_decode(
    chunks: Iterable[bytes],
    url: str,
    *,
    season: Optional[int] = None,
    columns: Sequence[str] = (),
    season_column: str = "season",
    chunk_rows: int = DEFAULT_CHUNK_ROWS,
) -> DecodedTable:
    """Synchronous streaming pipeline; run in a worker thread."""
    chunks, decompress = _sniff_gzip(chunks, url)
    raw = HashingReader(chunks, decompress=decompress)
    text = io.TextIOWrapper(io.BufferedReader(raw, buffer_size=STREAM_CHUNK_BYTES), encoding="utf-8-sig")
    rows: List[Row] = []
    try:
        with _relaxed_columns(), pd.read_csv(text, chunksize=chunk_rows, **_read_csv_kwargs()) as reader:
            for frame in reader:
                rows.extend(_frame_to_rows(_filter_chunk(frame, season, season_column, columns)))
    except pd.errors.EmptyDataError:
        pass
    except ParseError as exc:
        exc.url = url
        raise
    except (pd.errors.ParserError, UnicodeDecodeError, ValueError) as exc:
        raise ParseError(f"Malformed delimited stream from {url}: {exc}", url=url) from exc
    raw.drain()
    return DecodedTable(rows=rows, checksum=raw.hexdigest(), source=url)


def _iter_response(resp: HttpResponse, url: str) -> Iterator[bytes]:
    try:
        for chunk in resp.iter_content(chunk_size=STREAM_CHUNK_BYTES):
            yield chunk
    except OSError as exc:
        raise TransientNetworkError(f"Stream interrupted: {exc}", url=url) from exc


class TableDecoder:
    """Fetch + decode front end over an HttpTransport."""

    def __init__(self, transport: HttpTransport, *, chunk_rows: int = DEFAULT_CHUNK_ROWS) -> None:
        self._transport = transport
        self._chunk_rows = chunk_rows

    async def decode(self, url: str) -> DecodedTable:
        data = await self._transport.fetch_bytes(url)
        table = await asyncio.to_thread(decode_payload, data, url)
        logger.debug("Decoded %s rows=%d sha256=%s", url, len(table.rows), table.checksum[:12])
        return table

    async def decode_streaming(
        self,
        url: str,
        season: Optional[int] = None,
        *,
        columns: Sequence[str] = (),
        season_column: str = "season",
    ) -> DecodedTable:
        """
        Stream-decode url. Each attempt reopens the response and restarts the
        hash and row buffer, so a reset mid-body is retried like any other
        transient failure. The governor only gates opening the response.
        """
        transport = self._transport

        async def _attempt() -> DecodedTable:
            resp = await transport.open_stream(url, attempts=1)

            def _run() -> DecodedTable:
                with closing(resp):
                    return stream_decode(
                        _iter_response(resp, url),
                        url,
                        season=season,
                        columns=columns,
                        season_column=season_column,
                        chunk_rows=self._chunk_rows,
                    )

            return await asyncio.to_thread(_run)

        # no whole-body timeout; the request timeout still bounds each read
        cfg = transport.retry_config.with_overrides(timeout_ms=0)
        table = await resilient_call(
            _attempt, retry_config=cfg, sleep=transport.sleep, rng=transport.rng, label=url
        )
        logger.debug("Stream-decoded %s season=%s rows=%d", url, season, len(table.rows))
        return table
