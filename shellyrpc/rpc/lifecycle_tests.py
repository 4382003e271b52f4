import itertools
import unittest

from shellyrpc.io.socket import ReadyState
from shellyrpc.io.testing import FakeSocket
from shellyrpc.rpc.lifecycle import ConnectionLifecycle, ConnectionState, LifecycleEvent


class ConnectionStateTests(unittest.TestCase):
  def test_of(self):
    self.assertEqual(ConnectionState.of(None), ConnectionState.NO_SOCKET)
    self.assertEqual(ConnectionState.of(FakeSocket(ReadyState.CONNECTING)),
      ConnectionState.CONNECTING)
    self.assertEqual(ConnectionState.of(FakeSocket(ReadyState.OPEN)), ConnectionState.OPEN)
    self.assertEqual(ConnectionState.of(FakeSocket(ReadyState.CLOSING)), ConnectionState.CLOSING)
    self.assertEqual(ConnectionState.of(FakeSocket(ReadyState.CLOSED)), ConnectionState.CLOSED)

  def test_only_open_is_connected(self):
    self.assertEqual([s for s in ConnectionState if s.connected], [ConnectionState.OPEN])


class ConnectionLifecycleTests(unittest.TestCase):
  """ Tests for the connect/disconnect transition rules. """

  def test_open_then_close(self):
    lifecycle = ConnectionLifecycle(FakeSocket(ReadyState.CONNECTING))
    self.assertIs(lifecycle.opened(), LifecycleEvent.CONNECT)
    self.assertTrue(lifecycle.connected)
    self.assertIs(lifecycle.closed(), LifecycleEvent.DISCONNECT)
    self.assertEqual(lifecycle.state, ConnectionState.CLOSED)

  def test_repeated_open_emits_once(self):
    lifecycle = ConnectionLifecycle()
    self.assertIs(lifecycle.opened(), LifecycleEvent.CONNECT)
    self.assertIsNone(lifecycle.opened())

  def test_close_without_open_emits_nothing(self):
    lifecycle = ConnectionLifecycle(FakeSocket(ReadyState.CONNECTING))
    self.assertIsNone(lifecycle.closed())

  def test_replace_same_socket(self):
    socket = FakeSocket(ReadyState.OPEN)
    lifecycle = ConnectionLifecycle(socket)
    self.assertIsNone(lifecycle.replaced(socket, socket))
    self.assertTrue(lifecycle.connected)

  def test_replace_every_combination(self):
    """ A swap emits exactly one event when it crosses the connected boundary, none otherwise. """

    states = [None, *ReadyState]
    for old_state, new_state in itertools.product(states, states):
      with self.subTest(old=old_state, new=new_state):
        old = FakeSocket(old_state) if old_state is not None else None
        new = FakeSocket(new_state) if new_state is not None else None
        lifecycle = ConnectionLifecycle(old)

        event = lifecycle.replaced(old, new)

        was_connected = old_state == ReadyState.OPEN
        is_connected = new_state == ReadyState.OPEN
        if old is None and new is None:
          self.assertIsNone(event)
        elif not was_connected and is_connected:
          self.assertIs(event, LifecycleEvent.CONNECT)
        elif was_connected and not is_connected:
          self.assertIs(event, LifecycleEvent.DISCONNECT)
        else:
          self.assertIsNone(event)
        self.assertEqual(lifecycle.connected, is_connected)
