from unittest.mock import Mock


def test_once_line_fires_for_next_line_only(transport):
    once = Mock()
    transport.once_line(once)
    transport.receive("first")
    transport.receive("second")
    once.assert_called_once_with("first")


def test_once_listener_runs_before_persistent(transport):
    order = []
    transport.on_line(lambda line: order.append(("persistent", line)))
    transport.once_line(lambda line: order.append(("once", line)))
    transport.receive("x")
    assert order == [("once", "x"), ("persistent", "x")]


def test_close_event_fires_once_per_closure(transport):
    on_close = Mock()
    transport.on_close(on_close)
    transport.opened = True
    transport._mark_opened()
    transport._emit_close()
    transport._emit_close()
    on_close.assert_called_once_with()


def test_close_event_not_fired_before_open(transport):
    on_close = Mock()
    transport.on_close(on_close)
    transport._emit_close()
    on_close.assert_not_called()


def test_listener_error_does_not_stop_dispatch(transport):
    second = Mock()
    transport.on_line(Mock(side_effect=ValueError("bad")))
    transport.on_line(second)
    transport.receive("line")
    second.assert_called_once_with("line")


def test_error_listeners_receive_error(transport):
    on_error = Mock()
    transport.on_error(on_error)
    error = OSError("framing")
    transport._emit_error(error)
    on_error.assert_called_once_with(error)


def test_remove_listeners(transport):
    on_line = Mock()
    transport.on_line(on_line)
    transport.remove_listeners()
    transport.receive("line")
    on_line.assert_not_called()
