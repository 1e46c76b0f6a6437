from chatcommerce.services.backoff import InMemoryIntegrationBackoffService


def _service(clock):
    return InMemoryIntegrationBackoffService(
        threshold=2, max_backoff_seconds=8.0, cooldown_seconds=60.0, clock=lambda: clock[0]
    )


def test_delay_grows_after_threshold_and_is_capped():
    clock = [100.0]
    backoff = _service(clock)

    delays = []
    for _ in range(6):
        backoff.register_failure(integration="whatsapp_cloud")
        delays.append(backoff.before_request(integration="whatsapp_cloud").delay_seconds)

    assert delays == [0.0, 1.0, 2.0, 4.0, 8.0, 8.0]


def test_old_failures_cool_down():
    clock = [100.0]
    backoff = _service(clock)
    for _ in range(3):
        backoff.register_failure(integration="whatsapp_cloud")

    clock[0] += 61
    decision = backoff.before_request(integration="whatsapp_cloud")

    assert decision.delay_seconds == 0.0
    assert decision.consecutive_failures == 0
    assert backoff.register_failure(integration="whatsapp_cloud") == 1


def test_integrations_are_tracked_separately():
    clock = [100.0]
    backoff = _service(clock)
    for _ in range(3):
        backoff.register_failure(integration="whatsapp_cloud")

    assert backoff.before_request(integration="catalog").delay_seconds == 0.0
    backoff.register_success(integration="whatsapp_cloud")
    assert backoff.before_request(integration="whatsapp_cloud").consecutive_failures == 0
