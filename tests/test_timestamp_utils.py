import time

from topic_proposals.utils.timestamp_utils import MS_PER_DAY, now_ms


def test_now_ms_is_epoch_milliseconds():
    before = int(time.time() * 1000)
    value = now_ms()
    after = int(time.time() * 1000)

    assert isinstance(value, int)
    assert before <= value <= after


def test_day_in_milliseconds():
    assert MS_PER_DAY == 86_400_000
