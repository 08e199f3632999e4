"""Tests for topic naming and broker URL parsing."""
from __future__ import annotations

import pytest

from relay.topics import (
    BrokerEndpoint,
    command_subscription,
    connection_topic,
    name_topic,
    parse_broker_url,
    pin_command_topic,
    pin_topic,
    sanitize_client_id,
    split_node_topic,
)


class TestNodeTopics:
    def test_connection_topic(self):
        assert connection_topic("Se", 7) == "Se/7/connection"

    def test_command_subscription(self):
        assert command_subscription("Se", 7) == "Se/7/pin/+/r"

    def test_pin_topics(self):
        assert pin_topic("Se", 7, 3) == "Se/7/pin/3"
        assert pin_command_topic("Se", 7, 3) == "Se/7/pin/3/r"

    def test_name_topic(self):
        assert name_topic("lab", 12) == "lab/12/name"


class TestSplitNodeTopic:
    def test_splits(self):
        assert split_node_topic("Se/7/pin/3/r", "Se") == (7, ["pin", "3", "r"])

    def test_other_namespace(self):
        assert split_node_topic("Other/7/pin/3/r", "Se") is None

    def test_non_numeric_address(self):
        assert split_node_topic("Se/abc/pin", "Se") is None

    def test_too_short(self):
        assert split_node_topic("Se/7", "Se") is None

    def test_non_ascii_digits(self):
        assert split_node_topic("Se/\u00b2/pin", "Se") is None
        assert split_node_topic("Se/\u0667/pin", "Se") is None


class TestSanitizeClientId:
    def test_prefix_and_cleanup(self):
        assert sanitize_client_id("Se 7!", "selene_") == "selene_Se_7"

    def test_truncates(self):
        assert len(sanitize_client_id("Se_4294967294_extra_long")) == 23


class TestParseBrokerUrl:
    def test_mqtt_default_port(self):
        assert parse_broker_url("mqtt://localhost") == BrokerEndpoint("localhost", 1883, "tcp", False, "/")

    def test_mqtt_explicit_port(self):
        endpoint = parse_broker_url("mqtt://broker.lan:1884")
        assert endpoint.host == "broker.lan"
        assert endpoint.port == 1884
        assert endpoint.transport == "tcp"

    def test_mqtts(self):
        endpoint = parse_broker_url("mqtts://broker.lan")
        assert endpoint.port == 8883
        assert endpoint.tls is True

    def test_websocket_with_path(self):
        endpoint = parse_broker_url("ws://localhost:8088/mqtt")
        assert endpoint.transport == "websockets"
        assert endpoint.port == 8088
        assert endpoint.path == "/mqtt"
        assert endpoint.tls is False

    def test_wss(self):
        endpoint = parse_broker_url("wss://broker.example.com")
        assert endpoint.port == 443
        assert endpoint.tls is True

    def test_url_omits_path(self):
        assert parse_broker_url("ws://localhost:8088/").url == "ws://localhost:8088"

    def test_rejects_unknown_scheme(self):
        with pytest.raises(ValueError):
            parse_broker_url("http://localhost")

    def test_rejects_missing_host(self):
        with pytest.raises(ValueError):
            parse_broker_url("mqtt://")
