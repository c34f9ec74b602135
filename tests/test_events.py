"""
Tests for change events and the event dispatcher
"""

from datetime import datetime
from unittest.mock import Mock

from rt_lending.events import ChangeAction, ChangeEvent, EventDispatcher


class TestChangeEvent:
    """Test ChangeEvent creation and serialization"""

    def test_event_creation(self):
        """Test defaults are filled in"""
        event = ChangeEvent(action=ChangeAction.DELETE_LOAN, entity_id="7", payload={'id': "7"})

        assert isinstance(event.timestamp, datetime)
        assert len(event.event_id) > 0

    def test_event_serialization(self):
        """Test to_dict uses the action name"""
        event = ChangeEvent(action=ChangeAction.CREATE_TRANSACTION, entity_id="t1",
                            payload={'id': "t1", 'amount': 5})
        data = event.to_dict()

        assert data['action'] == "CREATE_TRANSACTION"
        assert data['entity_id'] == "t1"
        assert data['payload'] == {'id': "t1", 'amount': 5}
        assert data['event_id'] == event.event_id


class TestEventDispatcher:
    """Test publish/subscribe"""

    def setup_method(self):
        """Set up test fixtures"""
        self.dispatcher = EventDispatcher()
        self.event = ChangeEvent(action=ChangeAction.CREATE_LOAN, entity_id="1", payload={'id': "1"})

    def test_subscribe_all(self):
        """Test a global handler receives every action"""
        received = []
        self.dispatcher.subscribe_all(received.append)

        for action in ChangeAction:
            self.dispatcher.publish(ChangeEvent(action, "1", {}))

        assert [e.action for e in received] == list(ChangeAction)

    def test_failing_handler_does_not_stop_others(self):
        """Test handler errors are contained"""
        failing = Mock(side_effect=RuntimeError("boom"))
        failing.__name__ = "failing"
        working = Mock()
        self.dispatcher.subscribe_all(failing)
        self.dispatcher.subscribe_all(working)

        self.dispatcher.publish(self.event)

        working.assert_called_once_with(self.event)

    def test_unsubscribe(self):
        """Test a removed handler is no longer called"""
        handler = Mock()
        handler.__name__ = "handler"
        self.dispatcher.subscribe_all(handler)

        self.dispatcher.unsubscribe_all(handler)
        self.dispatcher.unsubscribe_all(handler)  # not subscribed any more, only logged

        self.dispatcher.publish(self.event)
        handler.assert_not_called()
