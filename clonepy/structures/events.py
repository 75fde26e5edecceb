"""
Observable events for plain Python classes.

An ``Event`` is a data descriptor declared on a class body. Each
instance keeps its subscribers in an ``EventHandlers`` list stored in
the instance ``__dict__`` under the event's own name, which is the
backing field the clone engine recognizes and clears in copies so that
a clone never notifies the original's subscribers.

Usage:
    >>> class Account:
    ...     changed = Event()
    ...
    >>> acct = Account()
    >>> acct.changed += print
    >>> acct.changed('balance')
    balance
"""

from typing import Any, Callable, Iterator, List


class EventHandlers:
    """Ordered subscriber list of one event on one instance."""

    __slots__ = ('_handlers',)

    def __init__(self):
        self._handlers: List[Callable] = []

    def subscribe(self, handler: Callable) -> Callable:
        self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler: Callable):
        self._handlers.remove(handler)

    def __iadd__(self, handler: Callable) -> 'EventHandlers':
        self.subscribe(handler)
        return self

    def __isub__(self, handler: Callable) -> 'EventHandlers':
        self.unsubscribe(handler)
        return self

    def __call__(self, *args, **kwargs):
        for handler in list(self._handlers):
            handler(*args, **kwargs)

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[Callable]:
        return iter(self._handlers)

    def __repr__(self):
        return f"EventHandlers({len(self._handlers)} subscribers)"


class Event:
    """Class-level event declaration."""

    def __init__(self, doc: str = ''):
        self.name = None
        self.__doc__ = doc

    def __set_name__(self, owner: type, name: str):
        self.name = name

    def __get__(self, obj: Any, objtype: type = None):
        if obj is None:
            return self
        handlers = obj.__dict__.get(self.name)
        if handlers is None:
            handlers = EventHandlers()
            obj.__dict__[self.name] = handlers
        return handlers

    def __set__(self, obj: Any, value: EventHandlers):
        # `obj.event += handler` rebinds the same EventHandlers
        if not isinstance(value, EventHandlers):
            raise TypeError(
                f"event '{self.name}' only accepts EventHandlers, got {type(value).__name__}"
            )
        obj.__dict__[self.name] = value
