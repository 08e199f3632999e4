"""Tests for the command-line entry point."""
from __future__ import annotations

import signal
from unittest.mock import patch

import selenerelay


class TestBuildParser:
    def test_defaults(self):
        args = selenerelay.build_parser().parse_args([])
        assert args.debug is False
        assert args.config is None
        assert args.broker_url is None
        assert args.baud is None
        assert args.console is False

    def test_repeated_config(self):
        args = selenerelay.build_parser().parse_args(["--config", "a.toml", "--config", "b.toml"])
        assert args.config == ["a.toml", "b.toml"]


class TestMain:
    def test_wires_config_into_relay(self, tmp_path):
        cfg = tmp_path / "relay.toml"
        cfg.write_text('[general]\nnamespace = "lab"\n[logging]\nfile = ""\n')

        with patch("selenerelay.SeleneRelay") as relay_cls, \
                patch("selenerelay.configure_logging") as configure, \
                patch("selenerelay.signal.signal") as install:
            selenerelay.main(["--config", str(cfg), "--broker-url", "mqtt://broker.lan", "--baud", "9600", "--debug"])

        config = relay_cls.call_args.args[0]
        assert config['general']['namespace'] == "lab"
        assert config['broker']['url'] == "mqtt://broker.lan"
        assert config['serial']['baud_rate'] == 9600
        assert relay_cls.call_args.kwargs == {'debug': True, 'version': selenerelay.__version__}
        configure.assert_called_once_with(config, debug=True)

        relay = relay_cls.return_value
        installed = {call.args[0] for call in install.call_args_list}
        assert installed == {signal.SIGTERM, signal.SIGINT}
        relay.run.assert_called_once()

    def test_environment_between_file_and_flags(self, tmp_path):
        cfg = tmp_path / "relay.toml"
        cfg.write_text('[general]\nnamespace = "lab"\n[broker]\nkeepalive = 30\n[logging]\nfile = ""\n')
        environ = {"SELENE_GENERAL_NAMESPACE": "shed", "SELENE_BROKER_URL": "mqtt://env.lan"}

        with patch.dict("os.environ", environ), \
                patch("selenerelay.SeleneRelay") as relay_cls, \
                patch("selenerelay.configure_logging"), \
                patch("selenerelay.signal.signal"):
            selenerelay.main(["--config", str(cfg), "--broker-url", "mqtt://cli.lan"])

        config = relay_cls.call_args.args[0]
        assert config['general']['namespace'] == "shed"
        assert config['broker']['keepalive'] == 30
        assert config['broker']['url'] == "mqtt://cli.lan"
