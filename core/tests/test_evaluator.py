import uuid

import pytest

from core.flags.cache import FlagCache
from core.flags.evaluation import FeatureFlagContext, Reason
from core.flags.evaluator import FlagEvaluator
from core.flags.events import EvaluationLogger
from core.flags.registry import FlagRegistry

pytestmark = pytest.mark.django_db


def test_unknown_flag(evaluator, prod, sink):
    res = evaluator.evaluate_flag("does_not_exist", prod(user_id="u1"))
    assert res.as_dict() == {
        "flag_key": "does_not_exist",
        "value": False,
        "enabled": False,
        "reason": "FLAG_NOT_FOUND",
    }
    assert sink.events == []


def test_fully_rolled_out_flag_is_evaluated(evaluator, make_flag, make_value, prod):
    flag = make_flag("new_checkout")
    row = make_value(flag, value=True)

    res = evaluator.evaluate_flag("new_checkout", prod(user_id="u1"))
    assert res.enabled is True
    assert res.value is True
    assert res.reason == Reason.EVALUATED
    assert res.variation_id == str(row.id)


@pytest.mark.parametrize("status", ["inactive", "archived"])
def test_inactive_flag_returns_default(evaluator, make_flag, make_value, prod, status):
    flag = make_flag("old_nav", flag_type="string", default_value="classic", status=status)
    make_value(flag, value="modern")

    res = evaluator.evaluate_flag("old_nav", prod(user_id="u1"))
    assert (res.value, res.enabled, res.reason) == ("classic", False, Reason.FLAG_INACTIVE)


def test_no_value_row_for_environment_returns_enabled_default(evaluator, make_flag, make_value, prod):
    flag = make_flag("limits", flag_type="number", default_value=10)
    make_value(flag, environment="staging", value=50)

    res = evaluator.evaluate_flag("limits", prod())
    assert (res.value, res.enabled, res.reason) == (10, True, Reason.DEFAULT_VALUE)
    assert res.variation_id is None

    staged = evaluator.evaluate_flag("limits", FeatureFlagContext(environment="staging"))
    assert staged.value == 50


def test_disabled_row(evaluator, make_flag, make_value, prod):
    flag = make_flag("search_v2")
    make_value(flag, enabled=False)

    res = evaluator.evaluate_flag("search_v2", prod(user_id="u1"))
    assert (res.value, res.enabled, res.reason) == (False, False, Reason.DISABLED_FOR_ENVIRONMENT)


def test_zero_rollout(evaluator, make_flag, make_value, prod):
    flag = make_flag("search_v2")
    make_value(flag, rollout_percentage=0)

    res = evaluator.evaluate_flag("search_v2", prod(user_id="u1"))
    assert (res.enabled, res.reason) == (False, Reason.NOT_IN_ROLLOUT)


def test_rollout_is_checked_before_targeting(evaluator, make_flag, make_value, prod):
    flag = make_flag("beta_ui", target_users=["u1"])
    make_value(flag, rollout_percentage=0)

    assert evaluator.evaluate_flag("beta_ui", prod(user_id="u1")).reason == Reason.NOT_IN_ROLLOUT


def test_target_users(evaluator, make_flag, make_value, prod):
    flag = make_flag("beta_ui", target_users=["u1", "u2"])
    make_value(flag)

    assert evaluator.evaluate_flag("beta_ui", prod(user_id="u1")).reason == Reason.EVALUATED
    assert evaluator.evaluate_flag("beta_ui", prod(user_id="u9")).reason == Reason.NOT_TARGETED_USER
    assert evaluator.evaluate_flag("beta_ui", prod()).reason == Reason.NOT_TARGETED_USER


def test_target_segments_match_any(evaluator, make_flag, make_value, make_segment, prod, sink):
    make_segment("premium", {"plan": {"in": ["premium", "enterprise"]}})
    make_segment("staff", {"email": {"endsWith": "@acme.com"}})
    flag = make_flag("reports", target_segments=["premium", "staff"])
    make_value(flag)

    free = evaluator.evaluate_flag("reports", prod(user_id="u1", user_properties={"plan": "free"}))
    assert free.reason == Reason.NOT_IN_TARGET_SEGMENT
    assert free.enabled is False

    staff = evaluator.evaluate_flag(
        "reports", prod(user_id="u2", user_properties={"plan": "free", "email": "eve@acme.com"})
    )
    assert staff.reason == Reason.EVALUATED
    assert sink.events[-1].matched_conditions == {"conditions": None, "segment": "staff"}


def test_inactive_and_foreign_segments_are_ignored(evaluator, make_flag, make_value, make_segment, prod):
    make_segment("premium", {"plan": "premium"}, is_active=False)
    make_segment("vip", {"plan": "premium"}, tenant_id="other")
    flag = make_flag("reports", target_segments=["premium", "vip"])
    make_value(flag)

    ctx = prod(user_id="u1", tenant_id="acme", user_properties={"plan": "premium"})
    assert evaluator.evaluate_flag("reports", ctx).reason == Reason.NOT_IN_TARGET_SEGMENT

    ctx = prod(user_id="u1", tenant_id="other", user_properties={"plan": "premium"})
    assert evaluator.evaluate_flag("reports", ctx).reason == Reason.EVALUATED


def test_unknown_segment_names_never_match(evaluator, make_flag, make_value, prod):
    flag = make_flag("reports", target_segments=["ghost"])
    make_value(flag)
    assert evaluator.evaluate_flag("reports", prod(user_id="u1")).reason == Reason.NOT_IN_TARGET_SEGMENT


def test_value_row_conditions(evaluator, make_flag, make_value, prod):
    flag = make_flag("upi_payments")
    make_value(flag, conditions={"country": "IN", "age": {"gte": 18}})

    ok = prod(user_id="u1", user_properties={"country": "IN", "age": 30})
    minor = prod(user_id="u1", user_properties={"country": "IN", "age": 16})
    assert evaluator.evaluate_flag("upi_payments", ok).reason == Reason.EVALUATED
    assert evaluator.evaluate_flag("upi_payments", minor).reason == Reason.CONDITIONS_NOT_MET


def test_malformed_row_conditions_fail_closed(evaluator, make_flag, make_value, prod):
    flag = make_flag("upi_payments")
    make_value(flag, conditions={"country": {"regex": "I."}})

    res = evaluator.evaluate_flag("upi_payments", prod(user_properties={"country": "IN"}))
    assert (res.enabled, res.reason) == (False, Reason.CONDITIONS_NOT_MET)


def test_tenant_flag_shadows_global_flag(evaluator, make_flag, make_value, prod):
    global_flag = make_flag("checkout")
    make_value(global_flag, value=True)
    make_flag("checkout", tenant_id="acme", status="inactive")

    assert evaluator.evaluate_flag("checkout", prod(tenant_id="acme")).reason == Reason.FLAG_INACTIVE
    assert evaluator.evaluate_flag("checkout", prod(tenant_id="globex")).reason == Reason.EVALUATED
    assert evaluator.evaluate_flag("checkout", prod()).reason == Reason.EVALUATED


def test_other_tenants_flags_are_invisible(evaluator, make_flag, make_value, prod):
    flag = make_flag("private_beta", tenant_id="acme")
    make_value(flag, tenant_id="acme")

    assert evaluator.evaluate_flag("private_beta", prod(tenant_id="acme")).reason == Reason.EVALUATED
    assert evaluator.evaluate_flag("private_beta", prod(tenant_id="globex")).reason == Reason.FLAG_NOT_FOUND


def test_tenant_value_row_takes_precedence(evaluator, make_flag, make_value, prod):
    flag = make_flag("theme", flag_type="string", default_value="light")
    make_value(flag, value="blue")
    make_value(flag, value="green", tenant_id="acme")

    assert evaluator.evaluate_flag("theme", prod(tenant_id="acme")).value == "green"
    assert evaluator.evaluate_flag("theme", prod(tenant_id="globex")).value == "blue"


def test_unexpected_failure_becomes_evaluation_error(evaluator, registry, make_flag, make_value, prod, sink, monkeypatch):
    flag = make_flag("fragile", flag_type="string", default_value="x")
    make_value(flag, value="y")

    def boom(*args, **kwargs):
        raise RuntimeError("database is down")

    monkeypatch.setattr(registry, "get_flag_value", boom)

    res = evaluator.evaluate_flag("fragile", prod(user_id="u1"))
    assert (res.value, res.enabled, res.reason) == (False, False, Reason.EVALUATION_ERROR)
    assert sink.events == []


def test_failing_sink_does_not_change_the_result(registry, cache, make_flag, make_value, prod):
    class BrokenSink:
        def emit(self, event):
            raise ConnectionError("broker unavailable")

    evaluator = FlagEvaluator(registry=registry, cache=cache, evaluation_logger=EvaluationLogger(BrokenSink()))
    flag = make_flag("new_checkout")
    make_value(flag)

    res = evaluator.evaluate_flag("new_checkout", prod(user_id="u1"))
    assert (res.enabled, res.reason) == (True, Reason.EVALUATED)


def test_only_evaluated_outcomes_emit_events(evaluator, make_flag, make_value, prod, sink):
    flag = make_flag("new_checkout")
    make_value(flag, conditions={"plan": "pro"})

    evaluator.evaluate_flag("new_checkout", prod(user_id="u1", user_properties={"plan": "free"}))
    assert sink.events == []

    ctx = prod(
        user_id="u1",
        tenant_id=None,
        user_properties={"plan": "pro"},
        custom_properties={"user_agent": "pytest", "ip_address": "10.0.0.1"},
    )
    evaluator.evaluate_flag("new_checkout", ctx)

    (event,) = sink.events
    assert event.flag_id == str(flag.id)
    assert event.flag_key == "new_checkout"
    assert event.environment == "production"
    assert event.evaluated_value is True
    assert event.evaluation_reason == Reason.EVALUATED
    assert event.user_id == "u1"
    assert event.user_agent == "pytest"
    assert event.ip_address == "10.0.0.1"
    assert event.matched_conditions == {"conditions": {"plan": "pro"}, "segment": None}


def test_evaluate_flags_is_independent_per_key(evaluator, make_flag, make_value, prod):
    ok = make_flag("ok_flag")
    make_value(ok)
    make_flag("inactive_flag", status="inactive")

    results = evaluator.evaluate_flags(["ok_flag", "missing", "inactive_flag", "ok_flag"], prod(user_id="u1"))
    assert list(results) == ["ok_flag", "missing", "inactive_flag"]
    assert results["ok_flag"].reason == Reason.EVALUATED
    assert results["missing"].reason == Reason.FLAG_NOT_FOUND
    assert results["inactive_flag"].reason == Reason.FLAG_INACTIVE
    assert all(key == res.flag_key for key, res in results.items())


def test_dark_mode_half_rollout(evaluator, make_flag, make_value):
    flag = make_flag("dark_mode")
    make_value(flag, environment="prod", rollout_percentage=50)

    def evaluate(user_id):
        return evaluator.evaluate_flag("dark_mode", FeatureFlagContext(environment="prod", user_id=user_id))

    ids = [str(uuid.uuid5(uuid.NAMESPACE_URL, f"user-{i}")) for i in range(10_000)]
    results = [evaluate(user_id) for user_id in ids]
    enabled = sum(r.enabled for r in results)
    assert 0.45 <= enabled / len(ids) <= 0.55
    assert {r.reason for r in results} == {Reason.EVALUATED, Reason.NOT_IN_ROLLOUT}

    # same user, same answer
    for user_id in ids[:50]:
        assert evaluate(user_id).enabled == evaluate(user_id).enabled


def test_definitions_are_served_from_cache(evaluator, make_flag, make_value, prod, django_assert_num_queries):
    flag = make_flag("new_checkout")
    make_value(flag)
    evaluator.evaluate_flag("new_checkout", prod(user_id="u1"))

    with django_assert_num_queries(0):
        assert evaluator.evaluate_flag("new_checkout", prod(user_id="u2")).reason == Reason.EVALUATED


def test_write_is_visible_immediately_to_the_same_service(service, make_flag, prod, clock):
    flag = make_flag("new_checkout")
    other_cache = FlagCache(ttl_seconds=300, clock=clock)
    other = FlagEvaluator(registry=FlagRegistry(cache=other_cache), cache=other_cache)

    service.update_flag_value(flag.id, "production", True)
    assert service.evaluate_flag("new_checkout", prod()).value is True
    assert other.evaluate_flag("new_checkout", prod()).value is True

    service.update_flag_value(flag.id, "production", False)
    assert service.evaluate_flag("new_checkout", prod()).value is False
    # independent cache keeps the stale row until its TTL runs out
    assert other.evaluate_flag("new_checkout", prod()).value is True

    clock.advance(301)
    assert other.evaluate_flag("new_checkout", prod()).value is False
