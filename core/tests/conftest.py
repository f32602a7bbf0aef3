import pytest

from core.flags.cache import FlagCache
from core.flags.evaluation import FeatureFlagContext
from core.flags.evaluator import FlagEvaluator
from core.flags.events import EvaluationLogger
from core.flags.models import FeatureFlag, FlagSegment, FlagValue
from core.flags.registry import FlagRegistry
from core.flags.service import FeatureFlagService


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingSink:
    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return FlagCache(ttl_seconds=300, clock=clock)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def registry(cache):
    return FlagRegistry(cache=cache)


@pytest.fixture
def evaluator(registry, cache, sink):
    return FlagEvaluator(registry=registry, cache=cache, evaluation_logger=EvaluationLogger(sink))


@pytest.fixture
def service(registry, evaluator):
    return FeatureFlagService(registry=registry, evaluator=evaluator)


@pytest.fixture
def make_flag(db):
    def _make(key, **kwargs):
        fields = {"name": key.replace("_", " ").title(), "flag_type": "boolean", "default_value": False}
        fields.update(kwargs)
        return FeatureFlag.objects.create(key=key, **fields)

    return _make


@pytest.fixture
def make_value(db):
    def _make(flag, environment="production", value=True, **kwargs):
        return FlagValue.objects.create(flag=flag, environment=environment, value=value, **kwargs)

    return _make


@pytest.fixture
def make_segment(db):
    def _make(name, conditions, **kwargs):
        return FlagSegment.objects.create(name=name, conditions=conditions, **kwargs)

    return _make


@pytest.fixture
def prod():
    def _ctx(**kwargs):
        kwargs.setdefault("environment", "production")
        return FeatureFlagContext(**kwargs)

    return _ctx
