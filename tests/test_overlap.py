from datetime import timedelta

from conftest import BASE_TIME, make_schedule_record

from zonecast.services.overlap import overlapping_higher_priority
from zonecast.timeutil import utcnow

HOUR = timedelta(hours=1)


def test_only_strictly_higher_priority_is_reported():
    entries = [
        make_schedule_record("same", "c1", priority=3),
        make_schedule_record("higher", "c2", priority=4),
        make_schedule_record("lower", "c3", priority=1),
    ]
    result = overlapping_higher_priority(entries, "reception", BASE_TIME - HOUR, BASE_TIME + HOUR, 3)
    assert [entry.id for entry in result] == ["higher"]


def test_touching_windows_do_not_overlap():
    entry = make_schedule_record("s1", "c1", priority=5, start=BASE_TIME, end=BASE_TIME + HOUR)

    assert overlapping_higher_priority([entry], "reception", BASE_TIME + HOUR, BASE_TIME + 2 * HOUR, 1) == []
    assert overlapping_higher_priority([entry], "reception", BASE_TIME - HOUR, BASE_TIME, 1) == []
    assert overlapping_higher_priority([entry], "reception", BASE_TIME + timedelta(minutes=59), BASE_TIME + 2 * HOUR, 1) == [entry]


def test_zone_matching():
    wildcard = make_schedule_record("wild", "c1", zone="all", priority=5)
    shop = make_schedule_record("shop", "c2", zone="shop", priority=5)
    start, end = BASE_TIME - HOUR, BASE_TIME + HOUR

    assert [entry.id for entry in overlapping_higher_priority([wildcard, shop], "reception", start, end, 1)] == ["wild"]
    assert {entry.id for entry in overlapping_higher_priority([wildcard, shop], "all", start, end, 1)} == {"wild", "shop"}


def test_advisor_uses_the_store(ctx, add_content, add_schedule):
    now = utcnow()
    banner = add_content("Banner", zone="reception")
    blocker = add_schedule(banner, "reception", priority=5, start=now, end=now + 2 * HOUR)
    add_schedule(banner, "restaurant", priority=9, start=now, end=now + 2 * HOUR)

    overlaps = ctx.advisor.find_higher_priority_overlaps("reception", now + HOUR, now + 3 * HOUR, 1)
    assert [entry.id for entry in overlaps] == [blocker.id]
    assert ctx.advisor.find_higher_priority_overlaps("reception", now + HOUR, now + 3 * HOUR, 5) == []
    assert ctx.advisor.find_higher_priority_overlaps(
        "reception", now + HOUR, now + 3 * HOUR, 1, exclude_id=blocker.id
    ) == []


def test_wildcard_candidate_checks_every_zone(ctx, add_content, add_schedule):
    now = utcnow()
    content = add_content("Slope", zone="skislope")
    entry = add_schedule(content, "skislope", priority=4, start=now, end=now + HOUR)

    overlaps = ctx.advisor.find_higher_priority_overlaps("all", now, now + HOUR, 1)
    assert [found.id for found in overlaps] == [entry.id]
