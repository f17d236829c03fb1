import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from superthanks_parser import (
    CommentBlock,
    ScanState,
    VideoUrlError,
    build_report,
    canonical_watch_url,
    extract_video_id,
    money_to_json,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ&ab_channel=Rick", "dQw4w9WgXcQ"),
        ("https://m.youtube.com/watch?feature=share&v=abc123", "abc123"),
        ("https://youtu.be/abc123?t=30", "abc123"),
        ("https://www.youtube.com/live/liveID42?si=x", "liveID42"),
        ("https://youtube.com/shorts/shortID", "shortID"),
        ("https://www.youtube.com/channel/UC123", None),
        ("https://example.com/watch?v=abc", None),
        ("not a url", None),
        ("", None),
    ],
)
def test_extract_video_id(raw, expected):
    assert extract_video_id(raw) == expected


def test_canonical_watch_url_drops_extra_params():
    video_id, url = canonical_watch_url("https://www.youtube.com/watch?v=abc123&ab_channel=X")
    assert video_id == "abc123"
    assert url == "https://www.youtube.com/watch?v=abc123"


def test_canonical_watch_url_rejects_urls_without_id():
    with pytest.raises(VideoUrlError):
        canonical_watch_url("https://www.youtube.com/feed/trending")


def test_money_to_json_keeps_integral_values_integral():
    assert money_to_json(Decimal("3000")) == 3000
    assert isinstance(money_to_json(Decimal("3000.00")), int)
    assert money_to_json(Decimal("2199.99")) == 2199.99
    assert money_to_json(Decimal("1.005")) == 1.01


def test_report_shape_matches_export_format():
    state = ScanState()
    state.ingest_batch(
        [
            CommentBlock(text="Super Thanks! ₺2.199,99 harika video", author="Ayşe"),
            CommentBlock(text="thanks $5.99 super thanks"),
            CommentBlock(text="super thanks 3 bin TL", author="Can"),
        ]
    )
    moment = datetime(2024, 5, 1, 12, 30, 15, 123000, tzinfo=timezone.utc)

    report = build_report(state, "https://www.youtube.com/watch?v=abc", "abc", generated_at=moment)

    assert list(report) == ["url", "videoId", "generatedAt", "totals", "count", "findings"]
    assert report["generatedAt"] == "2024-05-01T12:30:15.123Z"
    assert report["totals"] == {"TRY": 5199.99, "USD": 5.99}
    assert list(report["totals"]) == ["TRY", "USD"]
    assert report["count"] == 3
    assert report["findings"][0] == {
        "currency": "TRY",
        "amount": 2199.99,
        "author": "Ayşe",
        "snippet": "Super Thanks! ₺2.199,99 harika video",
    }
    assert report["findings"][2]["amount"] == 3000
    # Serializable as-is.
    json.loads(json.dumps(report, ensure_ascii=False))


def test_empty_state_reports_empty_totals():
    report = build_report(ScanState(), "u", "v")
    assert report["totals"] == {}
    assert report["count"] == 0
    assert report["findings"] == []
    assert report["generatedAt"].endswith("Z")
