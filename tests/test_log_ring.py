from __future__ import annotations

from datetime import datetime

from serterm.core.log_ring import MAX_ENTRIES, LogRing


def test_ring_never_exceeds_capacity() -> None:
    ring = LogRing()
    for i in range(MAX_ENTRIES + 1):
        ring.add("received", str(i).encode())

    entries = ring.entries()
    assert len(ring) == MAX_ENTRIES
    assert entries[0].text == "1"
    assert entries[-1].text == str(MAX_ENTRIES)
    assert all(e.text != "0" for e in entries)


def test_entries_get_increasing_ids_and_decoded_text() -> None:
    ring = LogRing(capacity=3)
    first = ring.add("sent", b"AT")
    second = ring.add("received", b"\x01\x02")
    assert second.id > first.id
    assert first.direction == "sent"
    assert first.text == "AT"
    assert second.text == "01 02"
    assert list(ring) == [first, second]


def test_listeners_see_each_entry_until_unsubscribed() -> None:
    ring = LogRing()
    seen = []
    unsubscribe = ring.subscribe(seen.append)
    ring.add("sent", b"a")
    unsubscribe()
    ring.add("sent", b"b")
    assert [e.data for e in seen] == [b"a"]


def test_failing_listener_does_not_break_append(caplog) -> None:
    ring = LogRing()

    def _boom(entry):
        raise RuntimeError("display gone")

    ring.subscribe(_boom)
    entry = ring.add("received", b"x")
    assert ring.entries() == (entry,)
    assert "Log listener failed" in caplog.text


def test_export_text_and_clear() -> None:
    ts = datetime(2024, 5, 6, 10, 11, 12, 345000).timestamp()
    ring = LogRing(clock=lambda: ts)
    ring.add("sent", b"AT")
    ring.add("received", b"OK")

    assert ring.export_text() == "[10:11:12.345] sent: AT\n[10:11:12.345] received: OK"
    assert ring.export_text("hex") == "[10:11:12.345] sent: 41 54\n[10:11:12.345] received: 4F 4B"

    ring.clear()
    assert len(ring) == 0
    assert ring.export_text() == ""
