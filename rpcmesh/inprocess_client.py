"""A client that calls services registered in the same process."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

log = logging.getLogger(__name__)

REQ_METADATA_KEY = "req_metadata"


class ServiceError(Exception):
    """An error reported by a service."""


@dataclass(eq=False)
class Call:
    """An RPC in progress or completed."""

    service_path: str
    service_method: str
    args: Any = None
    reply: Any = None
    metadata: Optional[Dict[str, str]] = None
    res_metadata: Optional[Dict[str, str]] = None
    error: Optional[BaseException] = None
    done: Optional[queue.Queue] = None
    raw: bool = False

    def complete(self) -> None:
        """Signal completion by putting this call on its done queue."""
        if self.done is None:
            return
        try:
            self.done.put_nowait(self)
        except queue.Full:
            log.debug("rpc: discarding Call reply due to insufficient done queue capacity")


def _request_metadata(ctx: Any) -> Optional[Dict[str, str]]:
    if isinstance(ctx, Mapping):
        return ctx.get(REQ_METADATA_KEY)
    return None


class InprocessClient:
    """Calls registered service objects directly, without a network.

    A service method is called as ``method(ctx, args, reply)`` and fills in
    ``reply``.
    """

    def __init__(self) -> None:
        self._services: Dict[str, Any] = {}
        self._methods: Dict[str, Callable[..., Any]] = {}
        self._lock = threading.RLock()
        self.server_message_chan: Any = None
        self.address = ""

    def connect(self, network: str, address: str) -> None:
        """Remember the address; there is no connection to open."""
        self.address = f"{network}@{address}"

    def register_server_message_chan(self, ch: Any) -> None:
        self.server_message_chan = ch

    def unregister_server_message_chan(self) -> None:
        self.server_message_chan = None

    def go(
        self,
        ctx: Any,
        service_path: str,
        service_method: str,
        args: Any,
        reply: Any,
        done: Optional[queue.Queue] = None,
    ) -> Call:
        """Perform the call synchronously and report it on ``done``."""
        call = Call(
            service_path=service_path,
            service_method=service_method,
            args=args,
            reply=reply,
            metadata=_request_metadata(ctx),
            done=done if done is not None else queue.Queue(maxsize=10),
        )
        try:
            self.call(ctx, service_path, service_method, args, reply)
        except Exception as exc:
            call.error = ServiceError(str(exc))
        call.complete()
        return call

    def _lookup(self, service_path: str, service_method: str) -> Callable[..., Any]:
        key = f"{service_path}.{service_method}"
        with self._lock:
            service = self._services.get(service_path)
            if service is None:
                raise LookupError(f"service {service_path} not found")
            method = self._methods.get(key)
            if method is None:
                if not service_method.startswith("_"):
                    method = getattr(service, service_method, None)
                if not callable(method):
                    raise LookupError(f"method {service_path}.{service_method} not found")
                self._methods[key] = method
            return method

    def call(self, ctx: Any, service_path: str, service_method: str, args: Any, reply: Any) -> None:
        """Call the named method of a registered service."""
        method = self._lookup(service_path, service_method)
        try:
            method(ctx, args, reply)
        except Exception as exc:
            raise ServiceError(
                f"failed to call {service_path}.{service_method} because of {exc}"
            ) from exc

    def send_raw(self, ctx: Any, r: Any):
        """Raw messages cannot be sent in process."""
        target = f"{getattr(r, 'service_path', '')}.{getattr(r, 'service_method', '')}"
        raise RuntimeError(f"send_raw ({target}) is not supported by the in-process client")

    def close(self) -> None:
        """Drop the cached method lookups."""
        with self._lock:
            self._methods.clear()

    def is_closing(self) -> bool:
        return False

    def is_shutdown(self) -> bool:
        return False

    def _forget_methods(self, name: str) -> None:
        prefix = name + "."
        for key in [k for k in self._methods if k.startswith(prefix)]:
            del self._methods[key]

    def register(self, name: str, rcvr: Any, metadata: str = "") -> None:
        """Register ``rcvr`` as the service ``name``."""
        with self._lock:
            self._services[name] = rcvr
            self._forget_methods(name)

    def unregister(self, name: str) -> None:
        """Remove the service ``name`` if it is registered."""
        with self._lock:
            self._services.pop(name, None)
            self._forget_methods(name)