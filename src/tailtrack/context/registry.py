from __future__ import annotations

import threading

from tailtrack.modules import errors
from tailtrack.context.core import Context


from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime


def create_default_registry() -> Registry:
    """ Creates the default registry for tailtrack. """

    import sedate

    from tailtrack.context.session import SessionProvider
    from tailtrack.context.settings import set_default_settings
    from tailtrack.modules.events import ChangeFeed

    registry = Registry()

    def session_provider(context: Context) -> SessionProvider:
        return SessionProvider(
            context.get_setting('dsn'),
            isolation_level=context.get_setting('isolation_level')
        )

    def change_feed_factory(context: Context) -> ChangeFeed:
        return ChangeFeed()

    def clock_factory(context: Context) -> Callable[[], datetime]:
        return sedate.utcnow

    master = registry.master_context
    assert master is not None
    master.set_service('session_provider', session_provider, cache=True)
    master.set_service('change_feed', change_feed_factory, cache=True)
    master.set_service('clock', clock_factory)

    set_default_settings(master)

    master.lock()

    return registry


class Registry:
    """ Holds a number of contexts and manages their creation. Stores are
    always given their context explicitly, there is no current context.

    A global registry instance is found in tailtrack::

        from tailtrack import registry

    Though if global state is something you need to avoid, you can create
    your own version of the registry::

        from tailtrack.context.registry import create_default_registry
        registry = create_default_registry()

    """

    contexts: dict[str, Context]
    master_context: Context | None = None

    def __init__(self) -> None:
        self.thread_lock = threading.RLock()

        with self.thread_lock:
            self.contexts = {}

        self.master_context = self.register_context('master')

    def is_existing_context(self, name: str) -> bool:
        return name in self.contexts

    def assert_not_locked(self, name: str) -> None:
        if self.get_context(name).locked:
            raise errors.ContextIsLocked

    def assert_exists(self, name: str) -> None:
        if not self.is_existing_context(name):
            raise errors.UnknownContext

    def assert_does_not_exist(self, name: str) -> None:
        if self.is_existing_context(name):
            raise errors.ContextAlreadyExists

    def register_context(self, name: str, replace: bool = False) -> Context:
        """ Registers a new context with the given name and returns it.

        """
        with self.thread_lock:
            if replace:
                if self.is_existing_context(name):
                    self.assert_not_locked(name)
            else:
                self.assert_does_not_exist(name)

            self.contexts[name] = Context(
                name,
                registry=self,
                parent=self.master_context,
                locked=False
            )

            return self.contexts[name]

    def get_context(self, name: str, autocreate: bool = False) -> Context:
        with self.thread_lock:
            if not autocreate:
                self.assert_exists(name)
            elif not self.is_existing_context(name):
                self.register_context(name)

            return self.contexts[name]
