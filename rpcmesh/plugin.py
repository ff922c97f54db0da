"""Client plugins and the container that runs their hooks."""

from __future__ import annotations

from typing import Any, Callable, Iterator, List, Optional, Protocol, Type, TypeVar, runtime_checkable

SelectFunc = Callable[[Any, str, str, Any], str]

_P = TypeVar("_P")


@runtime_checkable
class PreCallPlugin(Protocol):
    """Invoked before the client calls a server."""

    def pre_call(self, ctx: Any, service_path: str, service_method: str, args: Any) -> None: ...


@runtime_checkable
class PostCallPlugin(Protocol):
    """Invoked after the client has called a server."""

    def post_call(
        self,
        ctx: Any,
        service_path: str,
        service_method: str,
        args: Any,
        reply: Any,
        err: Optional[BaseException],
    ) -> None: ...


@runtime_checkable
class ConnCreatedPlugin(Protocol):
    """Invoked when a client connection has been created; may wrap it."""

    def conn_created(self, conn: Any) -> Any: ...


@runtime_checkable
class ClientConnectedPlugin(Protocol):
    """Invoked when the client has connected to the server; may wrap the connection."""

    def client_connected(self, conn: Any) -> Any: ...


@runtime_checkable
class ClientConnectionClosePlugin(Protocol):
    """Invoked when the connection is closing."""

    def client_connection_close(self, conn: Any) -> None: ...


@runtime_checkable
class ClientBeforeEncodePlugin(Protocol):
    """Invoked before a request message is encoded and sent."""

    def client_before_encode(self, req: Any) -> None: ...


@runtime_checkable
class ClientAfterDecodePlugin(Protocol):
    """Invoked after a response message has been decoded."""

    def client_after_decode(self, req: Any) -> None: ...


@runtime_checkable
class SelectNodePlugin(Protocol):
    """Wraps the node selection function, e.g. to skip some nodes."""

    def wrap_select(self, fn: SelectFunc) -> SelectFunc: ...


class PluginContainer:
    """Holds client plugins and runs each extension point over them in order.

    A hook signals failure by raising; the exception stops the chain and
    reaches the caller.
    """

    def __init__(self) -> None:
        self._plugins: List[Any] = []

    def add(self, plugin: Any) -> None:
        """Append a plugin."""
        self._plugins.append(plugin)

    def remove(self, plugin: Any) -> None:
        """Remove every occurrence of ``plugin``."""
        self._plugins = [p for p in self._plugins if p is not plugin]

    def all(self) -> List[Any]:
        """Return the plugins in the order they were added."""
        return list(self._plugins)

    def _having(self, kind: Type[_P]) -> Iterator[_P]:
        for plugin in list(self._plugins):
            if isinstance(plugin, kind):
                yield plugin

    def do_pre_call(self, ctx: Any, service_path: str, service_method: str, args: Any) -> None:
        """Run the pre-call hooks."""
        for plugin in self._having(PreCallPlugin):
            plugin.pre_call(ctx, service_path, service_method, args)

    def do_post_call(
        self,
        ctx: Any,
        service_path: str,
        service_method: str,
        args: Any,
        reply: Any,
        err: Optional[BaseException],
    ) -> None:
        """Run the post-call hooks.

        The call's error goes to the first hook; once a hook has handled it
        without raising, the following hooks see no error.
        """
        for plugin in self._having(PostCallPlugin):
            plugin.post_call(ctx, service_path, service_method, args, reply, err)
            err = None

    def do_conn_created(self, conn: Any) -> Any:
        """Pass the new connection through each hook and return the result."""
        for plugin in self._having(ConnCreatedPlugin):
            conn = plugin.conn_created(conn)
        return conn

    def do_client_connected(self, conn: Any) -> Any:
        """Pass the connected connection through each hook and return the result."""
        for plugin in self._having(ClientConnectedPlugin):
            conn = plugin.client_connected(conn)
        return conn

    def do_client_connection_close(self, conn: Any) -> None:
        """Run the connection-close hooks."""
        for plugin in self._having(ClientConnectionClosePlugin):
            plugin.client_connection_close(conn)

    def do_client_before_encode(self, req: Any) -> None:
        """Run the hooks for a request about to be encoded."""
        for plugin in self._having(ClientBeforeEncodePlugin):
            plugin.client_before_encode(req)

    def do_client_after_decode(self, req: Any) -> None:
        """Run the hooks for a freshly decoded message."""
        for plugin in self._having(ClientAfterDecodePlugin):
            plugin.client_after_decode(req)

    def do_wrap_select(self, fn: SelectFunc) -> SelectFunc:
        """Wrap ``fn`` with each selection hook; the last added is outermost."""
        for plugin in self._having(SelectNodePlugin):
            fn = plugin.wrap_select(fn)
        return fn