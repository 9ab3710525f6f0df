from payout_orchestrator.utils.backoff import BackoffPolicy, compute_backoff_seconds


def test_backoff_growth_and_cap():
    policy = BackoffPolicy(base_seconds=1, factor=2, max_seconds=10, jitter_pct=0.0)
    assert compute_backoff_seconds(1, policy) == 1
    assert compute_backoff_seconds(2, policy) == 2
    assert compute_backoff_seconds(3, policy) == 4
    capped = BackoffPolicy(base_seconds=1, factor=2, max_seconds=5, jitter_pct=0.0)
    assert compute_backoff_seconds(10, capped) == 5


def test_jitter_stays_within_band():
    policy = BackoffPolicy(base_seconds=2, factor=2, max_seconds=30, jitter_pct=0.1)
    for _ in range(50):
        delay = compute_backoff_seconds(2, policy)
        assert 3.6 <= delay <= 4.4


def test_settings_policy():
    policy = BackoffPolicy.from_settings()
    assert policy.max_attempts == 3
    assert policy.max_seconds == 30
