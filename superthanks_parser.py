#!/usr/bin/env python3
"""Extract Super Thanks donation amounts from YouTube comment text.

Comment blocks come from whatever renders the page (a browser capture, the web
service). Each block is gated by a recall-biased detection heuristic, scanned
for ``<currency><number>`` / ``<number><currency>`` pairs, and every parsed
pair is deduplicated and added to per-currency running totals.

Nothing in here raises on malformed comment text: a number that cannot be
parsed is skipped and the scan continues.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union
from urllib.parse import parse_qs, quote, urlparse

from superthanks_logging import get_logger


logger = get_logger("superthanks.parser")

MONEY_Q = Decimal("0.01")
THOUSAND = Decimal("1000")
SNIPPET_LIMIT = 200
# Integer digits an amount may have; longer digit runs are noise, not money.
MAX_AMOUNT_DIGITS = 15

CURRENCY_CODES = {
    "₺": "TRY",
    "TL": "TRY",
    "TRY": "TRY",
    "$": "USD",
    "USD": "USD",
    "€": "EUR",
    "EUR": "EUR",
    "£": "GBP",
    "GBP": "GBP",
    "¥": "JPY",
    "JPY": "JPY",
    "₹": "INR",
    "INR": "INR",
    "₩": "KRW",
    "KRW": "KRW",
    "₫": "VND",
    "VND": "VND",
    "₦": "NGN",
    "NGN": "NGN",
    "₱": "PHP",
    "PHP": "PHP",
    "R$": "BRL",
    "BRL": "BRL",
    "A$": "AUD",
    "AUD": "AUD",
    "C$": "CAD",
    "CAD": "CAD",
    "HK$": "HKD",
    "HKD": "HKD",
    "NT$": "TWD",
    "TWD": "TWD",
}

THANKS_KEYWORDS = (
    "super thanks",
    "super-thanks",
    "superthanks",
    "süper teşekkür",
    "süper teşekkürler",
    "süper-teşekkür",
)

# Codes must not be glued to other letters ("title", "TLX").
NO_LETTER_BEFORE = r"(?<![^\W\d_])"
NO_LETTER_AFTER = r"(?![^\W\d_])"


def _token_pattern(token: str) -> str:
    pattern = re.escape(token)
    if token[0].isalpha():
        pattern = NO_LETTER_BEFORE + pattern
    if token[-1].isalpha():
        pattern += NO_LETTER_AFTER
    return pattern


# Longest first so "HK$" wins over "$".
CURRENCY_PATTERN = "(?:{})".format(
    "|".join(_token_pattern(t) for t in sorted(CURRENCY_CODES, key=len, reverse=True))
)
NUMBER_PATTERN = (
    r"(?:\d+\s*bin" + NO_LETTER_AFTER + r"|\d+(?:[.,\u00a0\u202f\s]?\d{3})*(?:[.,]\d{1,2})?)"
)
AMOUNT_RE = re.compile(
    rf"(?P<lead_currency>{CURRENCY_PATTERN})\s*(?P<lead_number>{NUMBER_PATTERN})"
    rf"|(?P<trail_number>{NUMBER_PATTERN})\s*(?P<trail_currency>{CURRENCY_PATTERN})",
    re.IGNORECASE,
)
CURRENCY_TOKEN_RE = re.compile(CURRENCY_PATTERN, re.IGNORECASE)
THANKS_WORD_RE = re.compile(r"\bthanks|teşekkür", re.IGNORECASE)

WHITESPACE_RE = re.compile(r"[\s\u00a0\u202f]+")
THOUSAND_SUFFIX_RE = re.compile(r"\s*bin$", re.IGNORECASE)
DECIMAL_TAIL_RE = re.compile(r"[.,]\d{1,2}$")
GROUPING_RE = re.compile(r"[.,\s]")
PLAIN_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")

YOUTUBE_PATH_ID_RE = re.compile(r"^/(?:live|shorts)/([^/?#]+)")


class VideoUrlError(RuntimeError):
    pass


@dataclass(frozen=True)
class CommentBlock:
    text: str
    author: str = ""
    badge: bool = False
    # Comment body without the surrounding UI chrome, when the caller has it.
    content: Optional[str] = None


@dataclass(frozen=True)
class AmountCandidate:
    currency_token: str
    number_text: str


@dataclass(frozen=True)
class Finding:
    currency: str
    amount: Decimal
    author: str
    snippet: str


def squeeze_ws(value: str) -> str:
    return WHITESPACE_RE.sub(" ", value).strip()


def money_text(amount: Decimal) -> str:
    return format(amount.quantize(MONEY_Q, rounding=ROUND_HALF_UP), "f")


def money_to_json(amount: Decimal) -> Union[int, float]:
    quantized = amount.quantize(MONEY_Q, rounding=ROUND_HALF_UP)
    if quantized == quantized.to_integral_value():
        return int(quantized)
    return float(quantized)


def normalize_currency(token: str) -> str:
    """Map a currency symbol or code to its 3-letter code.

    Unknown tokens come back unchanged (upper-cased, spaces removed) so that
    unrecognized formats stay visible in the output.
    """
    cleaned = re.sub(r"\s+", "", token or "").upper()
    code = CURRENCY_CODES.get(cleaned)
    if code is None:
        logger.debug("Unknown currency token %r passed through", cleaned)
        return cleaned
    return code


def infer_decimal_separator(value: str) -> Optional[str]:
    """Guess which of ``.``/``,`` is the decimal point, if any.

    With both present the rightmost wins. With only one present it counts as
    decimal only when followed by exactly 1-2 trailing digits, so ``"2.199"``
    reads as two thousand one hundred ninety-nine.
    """
    last_dot = value.rfind(".")
    last_comma = value.rfind(",")
    if last_dot != -1 and last_comma != -1:
        return "." if last_dot > last_comma else ","
    if last_dot == -1 and last_comma == -1:
        return None
    if DECIMAL_TAIL_RE.search(value):
        return "." if last_dot != -1 else ","
    return None


def parse_amount(raw: str) -> Optional[Decimal]:
    """Parse a human-written number such as ``"2.199,99"`` or ``"3 bin"``.

    Returns ``None`` when the text does not reduce to a plain decimal or has
    more than ``MAX_AMOUNT_DIGITS`` integer digits.
    """
    value = squeeze_ws(raw or "")

    multiplier = Decimal(1)
    suffix = THOUSAND_SUFFIX_RE.search(value)
    if suffix:
        value = value[: suffix.start()]
        multiplier = THOUSAND

    separator = infer_decimal_separator(value)
    if separator is None:
        whole, fraction = value, ""
    else:
        whole, _, fraction = value.rpartition(separator)
    whole = GROUPING_RE.sub("", whole)
    token = f"{whole}.{fraction}" if fraction else whole

    if not PLAIN_NUMBER_RE.fullmatch(token):
        return None
    try:
        amount = Decimal(token) * multiplier
    except InvalidOperation:
        return None
    if amount.adjusted() >= MAX_AMOUNT_DIGITS:
        logger.debug("Skipping oversized amount %r", raw)
        return None
    return amount


def find_amount_candidates(text: str) -> List[AmountCandidate]:
    candidates: List[AmountCandidate] = []
    for m in AMOUNT_RE.finditer(text or ""):
        if m.group("lead_currency") is not None:
            candidates.append(AmountCandidate(m.group("lead_currency"), m.group("lead_number")))
        else:
            candidates.append(AmountCandidate(m.group("trail_currency"), m.group("trail_number")))
    return candidates


def has_thanks_keyword(block: CommentBlock) -> bool:
    lowered = squeeze_ws(block.text).lower()
    return any(keyword in lowered for keyword in THANKS_KEYWORDS)


def has_badge(block: CommentBlock) -> bool:
    return bool(block.badge)


def has_currency_and_thanks_word(block: CommentBlock) -> bool:
    return bool(CURRENCY_TOKEN_RE.search(block.text)) and bool(THANKS_WORD_RE.search(block.text))


Detector = Callable[[CommentBlock], bool]

DETECTORS: Tuple[Detector, ...] = (
    has_thanks_keyword,
    has_badge,
    has_currency_and_thanks_word,
)


def is_super_thanks_block(block: CommentBlock, detectors: Sequence[Detector] = DETECTORS) -> bool:
    return any(detect(block) for detect in detectors)


def block_snippet(block: CommentBlock) -> str:
    source = block.content if block.content is not None else block.text
    return squeeze_ws(source)[:SNIPPET_LIMIT]


def fingerprint(finding: Finding) -> str:
    return "|".join(
        (
            finding.currency,
            money_text(finding.amount),
            finding.author.strip(),
            finding.snippet.strip(),
        )
    )


def extract_findings(
    block: CommentBlock, detectors: Sequence[Detector] = DETECTORS
) -> List[Finding]:
    """Every parseable amount in a detected block, in text order."""
    if not block.text.strip():
        return []
    if not is_super_thanks_block(block, detectors):
        return []

    author = block.author.strip()
    snippet = block_snippet(block)
    found: List[Finding] = []
    for candidate in find_amount_candidates(block.text):
        currency = normalize_currency(candidate.currency_token)
        amount = parse_amount(candidate.number_text)
        if not currency or amount is None:
            logger.debug(
                "Skipping unparseable match %r %r", candidate.currency_token, candidate.number_text
            )
            continue
        found.append(Finding(currency=currency, amount=amount, author=author, snippet=snippet))
    return found


@dataclass
class ScanState:
    """Seen fingerprints, ordered findings and running totals of one scan.

    Totals stay unrounded; ``snapshot_totals`` rounds on read. Callers that
    ingest from several threads must serialize calls themselves.
    """

    min_amount: Decimal = Decimal("0")
    detectors: Tuple[Detector, ...] = DETECTORS
    seen: Set[str] = field(default_factory=set)
    findings: List[Finding] = field(default_factory=list)
    totals: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.findings)

    def ingest(self, block: CommentBlock) -> List[Finding]:
        new: List[Finding] = []
        for finding in extract_findings(block, self.detectors):
            if finding.amount < self.min_amount:
                continue
            key = fingerprint(finding)
            if key in self.seen:
                continue
            self.seen.add(key)
            self.findings.append(finding)
            self.totals[finding.currency] = self.totals.get(finding.currency, Decimal("0")) + finding.amount
            new.append(finding)
        return new

    def ingest_batch(self, blocks: Iterable[CommentBlock]) -> List[Finding]:
        new: List[Finding] = []
        for block in blocks:
            new.extend(self.ingest(block))
        if new:
            logger.info("Batch added %d finding(s), %d total", len(new), self.count)
        return new

    def snapshot_totals(self) -> Dict[str, Decimal]:
        return {
            currency: self.totals[currency].quantize(MONEY_Q, rounding=ROUND_HALF_UP)
            for currency in sorted(self.totals)
        }


def extract_video_id(raw: str) -> Optional[str]:
    """Video id from watch, youtu.be, /live/ and /shorts/ URLs."""
    try:
        parsed = urlparse((raw or "").strip())
    except ValueError:
        return None
    host = (parsed.hostname or "").lower()

    if host == "youtu.be" or host.endswith(".youtu.be"):
        parts = [p for p in parsed.path.split("/") if p]
        return parts[0] if parts else None

    if host == "youtube.com" or host.endswith(".youtube.com"):
        if parsed.path == "/watch":
            values = parse_qs(parsed.query).get("v")
            return values[0] if values and values[0] else None
        m = YOUTUBE_PATH_ID_RE.match(parsed.path)
        if m:
            return m.group(1)
    return None


def canonical_watch_url(raw: str) -> Tuple[str, str]:
    video_id = extract_video_id(raw)
    if not video_id:
        raise VideoUrlError("Could not extract a valid YouTube video ID from the provided URL.")
    return video_id, f"https://www.youtube.com/watch?v={quote(video_id, safe='')}"


def finding_to_json(finding: Finding) -> dict:
    return {
        "currency": finding.currency,
        "amount": money_to_json(finding.amount),
        "author": finding.author,
        "snippet": finding.snippet,
    }


def totals_to_json(totals: Dict[str, Decimal]) -> Dict[str, Union[int, float]]:
    return {currency: money_to_json(amount) for currency, amount in totals.items()}


def iso_timestamp(moment: Optional[datetime] = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_report(
    state: ScanState,
    url: str,
    video_id: str,
    generated_at: Optional[datetime] = None,
) -> dict:
    return {
        "url": url,
        "videoId": video_id,
        "generatedAt": iso_timestamp(generated_at),
        "totals": totals_to_json(state.snapshot_totals()),
        "count": state.count,
        "findings": [finding_to_json(f) for f in state.findings],
    }
