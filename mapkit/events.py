import typing
from collections import defaultdict

import attr


Listener = typing.Callable[["Event"], typing.Any]


class Events:
    PRE_SAVE = "pre_save"
    POST_SAVE = "post_save"
    PRE_CREATE = "pre_create"
    POST_CREATE = "post_create"
    PRE_UPDATE = "pre_update"
    POST_UPDATE = "post_update"
    PRE_DELETE = "pre_delete"
    POST_DELETE = "post_delete"
    POST_LOAD = "post_load"

    ALL = (
        PRE_SAVE,
        POST_SAVE,
        PRE_CREATE,
        POST_CREATE,
        PRE_UPDATE,
        POST_UPDATE,
        PRE_DELETE,
        POST_DELETE,
        POST_LOAD,
    )


class Event:
    propagation_stopped = False

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


@attr.s(auto_attribs=True, eq=False)
class EntityEvent(Event):
    entity: typing.Any
    metadata: typing.Any
    manager: typing.Any

    @property
    def connection(self) -> typing.Any:
        return self.manager.connection


@attr.s(auto_attribs=True)
class EventDispatcher:
    """Synchronous dispatcher; listeners run by descending priority, then in registration order."""

    listeners: typing.DefaultDict[str, typing.List[typing.Tuple[int, Listener]]] = attr.Factory(
        lambda: defaultdict(list)
    )

    def add_listener(self, name: str, listener: Listener, priority: int = 0) -> None:
        self.listeners[name].append((priority, listener))

    def remove_listener(self, name: str, listener: Listener) -> None:
        self.listeners[name] = [(p, l) for p, l in self.listeners[name] if l != listener]

    def listen(self, name: str, priority: int = 0) -> typing.Callable[[Listener], Listener]:
        def decorator(listener: Listener) -> Listener:
            self.add_listener(name, listener, priority)
            return listener

        return decorator

    def add_subscriber(self, subscriber: typing.Any) -> None:
        for name, params in subscriber.get_subscribed_events().items():
            if isinstance(params, str):
                method_name, priority = params, 0
            else:
                method_name, priority = params
            self.add_listener(name, getattr(subscriber, method_name), priority)

    def has_listeners(self, name: str) -> bool:
        return bool(self.listeners.get(name))

    def get_listeners(self, name: str) -> typing.List[Listener]:
        # sorted() is stable, so equal priorities keep registration order
        return [listener for _, listener in sorted(self.listeners.get(name, ()), key=lambda item: -item[0])]

    def dispatch(self, name: str, event: typing.Optional[Event] = None) -> Event:
        if event is None:
            event = Event()

        for listener in self.get_listeners(name):
            if event.propagation_stopped:
                break
            listener(event)

        return event
