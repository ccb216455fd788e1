import threading
import pytest
import random

from tailtrack import new_store
from tailtrack.context.core import StoppableService
from tailtrack.context.registry import Registry, create_default_registry
from tailtrack.modules import errors
from tailtrack.modules.events import ChangeFeed


def test_registry_contexts():
    r = Registry()

    assert r.master_context.name == 'master'
    assert r.is_existing_context('master')
    assert not r.is_existing_context('ops')

    ops = r.register_context('ops')

    assert r.is_existing_context('ops')
    assert r.get_context('ops') is ops
    assert ops.parent is r.master_context
    assert ops.registry is r


def test_autocreate():
    r = Registry()

    ctx = r.get_context('ops', autocreate=True)

    assert r.get_context('ops', autocreate=True) is ctx
    assert r.get_context('ops') is ctx


def test_assert_existence():
    r = Registry()

    with pytest.raises(errors.UnknownContext):
        r.assert_exists('ops')

    r.register_context('ops')

    with pytest.raises(errors.ContextAlreadyExists):
        r.assert_does_not_exist('ops')


def test_replace():
    r = Registry()

    ctx = r.register_context('ops')
    ctx.set_setting('test', 'one')

    assert ctx.get_setting('test') == 'one'

    ctx = r.register_context('ops', replace=True)
    assert ctx.get_setting('test') != 'one'

    ctx.lock()

    with pytest.raises(errors.ContextIsLocked):
        ctx = r.register_context('ops', replace=True)


def test_locked_contexts():
    r = Registry()

    context = r.register_context('test')
    context.set('foo', 'bar')
    context.lock()

    with pytest.raises(errors.ContextIsLocked):
        context.set('foo', 'bar')

    context.unlock()
    context.set('foo', 'baz')
    assert context.get('foo') == 'baz'


def test_master_fallback():
    r = Registry()

    r.master_context.set_setting('dsn', 'postgresql://localhost/ops')

    ops = r.register_context('ops')
    assert ops.get_setting('dsn') == 'postgresql://localhost/ops'

    ops.set_setting('dsn', 'postgresql://remotehost/ops')
    assert ops.get_setting('dsn') == 'postgresql://remotehost/ops'

    maintenance = r.register_context('maintenance')
    assert maintenance.get_setting('dsn') == 'postgresql://localhost/ops'


def test_unknown_service():
    r = Registry()

    with pytest.raises(errors.UnknownService):
        r.master_context.get_service('nothing')


def test_services():
    r = Registry()

    r.master_context.set_service('service', factory=lambda ctx: object())
    first_call = r.master_context.get_service('service')
    second_call = r.master_context.get_service('service')

    assert first_call is not second_call


def test_services_cache():
    r = Registry()

    r.master_context.set_service(
        'service', factory=lambda ctx: object(), cache=True
    )

    first_call = r.master_context.get_service('service')
    second_call = r.master_context.get_service('service')

    assert first_call is second_call

    # every context gets its own instance
    ops = r.register_context('ops')
    assert ops.get_service('service') is ops.get_service('service')
    assert ops.get_service('service') is not first_call


def test_replaced_services_are_stopped():
    r = Registry()

    class Service(StoppableService):
        stopped = False

        def stop_service(self):
            self.stopped = True

    first, second = Service(), Service()

    context = r.register_context('ops')
    context.set('service/thing/cache', first)
    context.set('service/thing/cache', second)

    assert first.stopped
    assert not second.stopped


def test_default_registry():
    r = create_default_registry()

    assert r.master_context.locked
    assert r.master_context.get_setting('isolation_level') == 'SERIALIZABLE'
    assert r.master_context.get_setting('longest_sits_limit') == 10
    assert r.master_context.get_setting('dsn') is None

    ops = r.register_context('ops')
    maintenance = r.register_context('maintenance')

    feed = ops.get_service('change_feed')
    assert isinstance(feed, ChangeFeed)
    assert ops.get_service('change_feed') is feed
    assert maintenance.get_service('change_feed') is not feed

    now = ops.get_service('clock')()
    assert now.tzinfo is not None


def test_new_store():
    store = new_store(
        'tailtrack-test-new-store',
        timezone='America/Chicago',
        settings={'settings.longest_sits_limit': 5, 'dsn': 'postgresql://'}
    )

    assert store.timezone == 'America/Chicago'
    assert store.context.get_setting('longest_sits_limit') == 5
    assert store.context.get_setting('dsn') == 'postgresql://'

    clone = store.clone()
    assert clone.context is store.context
    assert clone.timezone == store.timezone


def test_threading_contexts():
    r = Registry()

    class Application(threading.Thread):

        def __init__(self, name, registry):
            threading.Thread.__init__(self)
            self.registry = registry
            self.name = name

        def run(self):
            self.result = self.registry.get_context(self.name, autocreate=True)

        def join(self):
            threading.Thread.join(self)
            return self.result

    for i in range(0, 100):

        threads = [
            Application(f'dfw-{i}', r),
            Application(f'dfw-{i}', r),
            Application(f'ord-{i}', r),
            Application(f'ord-{i}', r)
        ]

        random.shuffle(threads)

        for t in threads:
            t.start()

        results = {t.name: [] for t in threads}
        for t in threads:
            results[t.name].append(t.join())

        # every name is registered once, all threads share the context
        for contexts in results.values():
            assert len(contexts) == 2
            assert contexts[0] is contexts[1]
