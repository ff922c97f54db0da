import pytest

from rpcmesh.plugin import PluginContainer


class Recorder:
    def __init__(self, name, log):
        self.name = name
        self.log = log

    def pre_call(self, ctx, service_path, service_method, args):
        self.log.append((self.name, "pre", service_path, service_method, args))

    def post_call(self, ctx, service_path, service_method, args, reply, err):
        self.log.append((self.name, "post", err))


class OnlyBeforeEncode:
    def __init__(self):
        self.seen = []

    def client_before_encode(self, req):
        self.seen.append(req)


class Failing:
    def pre_call(self, ctx, service_path, service_method, args):
        raise ValueError("refused")


class FailingClose:
    def client_connection_close(self, conn):
        raise OSError("close refused")


class Wrapper:
    def __init__(self, tag):
        self.tag = tag

    def conn_created(self, conn):
        return conn + [self.tag]

    def client_connected(self, conn):
        return conn + [self.tag]

    def wrap_select(self, fn):
        def wrapped(ctx, service_path, service_method, args):
            return self.tag + "(" + fn(ctx, service_path, service_method, args) + ")"

        return wrapped


class Closer:
    def __init__(self):
        self.closed = []

    def client_connection_close(self, conn):
        self.closed.append(conn)


class Decoded:
    def __init__(self):
        self.seen = []

    def client_after_decode(self, req):
        self.seen.append(req)


def test_add_all_and_remove():
    container = PluginContainer()
    a, b = Closer(), Closer()
    container.add(a)
    container.add(b)
    container.add(a)
    assert container.all() == [a, b, a]
    container.remove(a)
    assert container.all() == [b]


def test_remove_from_empty_container():
    container = PluginContainer()
    container.remove(Closer())
    assert container.all() == []


def test_pre_call_runs_matching_plugins_in_order():
    log = []
    container = PluginContainer()
    container.add(Recorder("first", log))
    container.add(OnlyBeforeEncode())
    container.add(Recorder("second", log))
    container.do_pre_call(None, "Arith", "Mul", 7)
    assert log == [
        ("first", "pre", "Arith", "Mul", 7),
        ("second", "pre", "Arith", "Mul", 7),
    ]


def test_pre_call_error_stops_chain():
    log = []
    container = PluginContainer()
    container.add(Failing())
    container.add(Recorder("later", log))
    with pytest.raises(ValueError, match="refused"):
        container.do_pre_call(None, "Arith", "Mul", None)
    assert log == []


def test_post_call_error_reaches_first_plugin_only():
    log = []
    container = PluginContainer()
    container.add(Recorder("first", log))
    container.add(Recorder("second", log))
    err = RuntimeError("boom")
    container.do_post_call(None, "Arith", "Mul", None, None, err)
    assert log == [("first", "post", err), ("second", "post", None)]


def test_conn_created_chains_results():
    container = PluginContainer()
    container.add(Wrapper("a"))
    container.add(Closer())
    container.add(Wrapper("b"))
    assert container.do_conn_created([]) == ["a", "b"]
    assert container.do_client_connected(["x"]) == ["x", "a", "b"]


def test_conn_created_without_plugins_returns_conn():
    container = PluginContainer()
    conn = object()
    assert container.do_conn_created(conn) is conn


def test_connection_close_and_codec_hooks():
    closer, encoder, decoder = Closer(), OnlyBeforeEncode(), Decoded()
    container = PluginContainer()
    for plugin in (closer, encoder, decoder):
        container.add(plugin)
    assert container.all() == [closer, encoder, decoder]
    container.do_client_connection_close("conn")
    container.do_client_before_encode("req")
    container.do_client_after_decode("res")
    assert closer.closed == ["conn"]
    assert encoder.seen == ["req"]
    assert decoder.seen == ["res"]


def test_connection_close_error_stops_chain():
    closer = Closer()
    container = PluginContainer()
    container.add(FailingClose())
    container.add(closer)
    with pytest.raises(OSError, match="close refused"):
        container.do_client_connection_close("conn")
    assert closer.closed == []


def test_wrap_select_last_added_is_outermost():
    container = PluginContainer()
    container.add(Wrapper("a"))
    container.add(Wrapper("b"))
    fn = container.do_wrap_select(lambda ctx, sp, sm, args: sp)
    assert fn(None, "srv", "m", None) == "b(a(srv))"