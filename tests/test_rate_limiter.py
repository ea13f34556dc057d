"""rate_limiter モジュールのユニットテスト."""

from collections import Counter

from rank_tracker.rate_limiter import IpRateLimiter


def _counter():
    counts = Counter()

    def increment(ip):
        counts[ip] += 1
        return counts[ip]

    return increment


class TestIpRateLimiter:
    """IpRateLimiter のテスト."""

    def test_tenth_allowed_eleventh_rejected(self):
        limiter = IpRateLimiter(increment=_counter(), threshold=10)

        decisions = [limiter.check("203.0.113.5") for _ in range(11)]

        assert decisions[9].allowed is True
        assert decisions[9].remaining == 0
        assert decisions[10].allowed is False
        assert decisions[10].count == 11
        assert decisions[10].remaining == 0

    def test_remaining(self):
        limiter = IpRateLimiter(increment=_counter(), threshold=10)
        assert limiter.check("203.0.113.5").remaining == 9

    def test_keyed_by_ip(self):
        limiter = IpRateLimiter(increment=_counter(), threshold=1)

        assert limiter.check("198.51.100.1").allowed is True
        assert limiter.check("198.51.100.1").allowed is False
        assert limiter.check("198.51.100.2").allowed is True
